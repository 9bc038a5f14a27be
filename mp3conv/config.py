# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import re
from logging import getLogger
from pathlib import Path
from typing import Any, Dict, Optional

import tomli
from attrs import frozen

logger = getLogger(__name__)

CONFIG_FILE_NAME = "mp3conv.toml"

DEFAULT_CONVERTERS = 6
DEFAULT_EXE = "ffmpeg"
DEFAULT_INPUT = ".mp4"
DEFAULT_OUTPUT = ".mp3"
DEFAULT_CMD = "-y -i {input} -vn -ar {sample_rate} -b:a {bitrate} {output}"
DEFAULT_SAMPLE_RATE = 48000
DEFAULT_BITRATE = "137K"


def validate_pos_int(var_: Any) -> int:
    """Convert var into an int and validate it is positive"""
    if isinstance(var_, bool):
        raise ValueError(f"{var_} is not a positive integer.")
    var_ = int(var_)  # Raises ValueError if not able to convert
    if var_ < 1:
        raise ValueError(f"{var_} is not a positive integer.")
    return var_


def validate_suffix(suffix: Any) -> str:
    pattern = re.compile(r"^\.[\w]+$")
    if not isinstance(suffix, str) or not pattern.match(suffix):
        raise ValueError("File suffixes must be of the form .a-z0-9")
    return suffix


class ConfigException(Exception):
    pass


@frozen
class Settings:
    converters: int = DEFAULT_CONVERTERS
    timeout: Optional[float] = None
    exe: str = DEFAULT_EXE
    input_suffix: str = DEFAULT_INPUT
    output_suffix: str = DEFAULT_OUTPUT
    cmd: str = DEFAULT_CMD
    sample_rate: int = DEFAULT_SAMPLE_RATE
    bitrate: str = DEFAULT_BITRATE

    @classmethod
    def find(cls, root: Path, config_path: Optional[Path] = None) -> "Settings":
        """Load settings from config_path, or from the root's config file if
        there is one, otherwise return the defaults."""
        if config_path is not None:
            config_path = Path(config_path).expanduser()
            if not config_path.is_file():
                raise FileNotFoundError(f"Config '{config_path}' not found.")
        elif (root / CONFIG_FILE_NAME).is_file():
            config_path = root / CONFIG_FILE_NAME
        if config_path is None:
            logger.debug("No %s found, using defaults", CONFIG_FILE_NAME)
            return cls()
        return cls.from_toml(config_path)

    @classmethod
    def from_toml(cls, config_path: Path) -> "Settings":
        """Read the config file and build the settings from it

        Args:
            config_path: Path to the TOML config file.

        Raises:
            FileNotFoundError: Config file not found at the config_path.
            PermissionError: File at config_path is not readable.
            ConfigException: Config file is not valid TOML or not correct
        """
        with open(config_path, "rb") as f:  # tomli requires "rb"
            try:
                toml_dict = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigException(
                    f"Config '{config_path}' does not contain valid TOML."
                ) from e

        logger.debug("Config: %s", str(toml_dict))
        return cls.from_dict(toml_dict)

    @classmethod
    def from_dict(cls, toml_dict: Dict[str, Any]) -> "Settings":
        try:
            converters = validate_pos_int(
                toml_dict.get("converters", DEFAULT_CONVERTERS)
            )
        except (TypeError, ValueError) as e:
            raise ConfigException(
                "If 'converters' is set it must be a positive integer."
            ) from e

        timeout = toml_dict.get("timeout")
        if timeout is not None:
            try:
                timeout = float(timeout)
            except (TypeError, ValueError) as e:
                raise ConfigException(
                    "If 'timeout' is set it must be a number of seconds."
                ) from e
            if timeout <= 0:
                raise ConfigException(
                    "If 'timeout' is set it must be a number of seconds."
                )

        converter = toml_dict.get("converter", {})
        if not isinstance(converter, dict):
            raise ConfigException("[converter] must be a table.")

        try:
            input_suffix = validate_suffix(converter.get("input", DEFAULT_INPUT))
        except ValueError as e:
            raise ConfigException(
                'converter.input must be a single file suffix e.g. ".mp4".'
            ) from e

        try:
            output_suffix = validate_suffix(converter.get("output", DEFAULT_OUTPUT))
        except ValueError as e:
            raise ConfigException(
                'converter.output must be a single file suffix e.g. ".mp3".'
            ) from e

        if input_suffix == output_suffix:
            raise ConfigException("converter.input and converter.output must differ.")

        exe = converter.get("exe", DEFAULT_EXE)
        if not isinstance(exe, str) or not exe:
            raise ConfigException("converter.exe must be a program name or path.")

        cmd = converter.get("cmd", DEFAULT_CMD)
        if not isinstance(cmd, str) or "{output}" not in cmd:
            raise ConfigException(
                "converter.cmd must be a string containing {output}."
            )
        fields = {"input": "in", "output": "out", "sample_rate": 1, "bitrate": "1K"}
        try:
            for token in cmd.split():
                token.format_map(fields)
        except (KeyError, ValueError, IndexError) as e:
            raise ConfigException(
                "converter.cmd may only use {input} {output} {sample_rate} {bitrate}."
            ) from e

        try:
            sample_rate = validate_pos_int(
                converter.get("sample_rate", DEFAULT_SAMPLE_RATE)
            )
        except (TypeError, ValueError) as e:
            raise ConfigException(
                "converter.sample_rate must be a positive integer."
            ) from e

        bitrate = str(converter.get("bitrate", DEFAULT_BITRATE))

        return cls(
            converters=converters,
            timeout=timeout,
            exe=exe,
            input_suffix=input_suffix,
            output_suffix=output_suffix,
            cmd=cmd,
            sample_rate=sample_rate,
            bitrate=bitrate,
        )
