"""
The config module provides the config schema and parsing logic.

Every key is optional: a missing configuration file is not an error for the CLI, which then falls
back to `Config.default()` and works on a virtual tree. When a file is present, we provide detailed
errors for invalid values and emit warnings when unrecognized keys are found.
"""

from __future__ import annotations

import functools
import logging
import tomllib
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import appdirs
import jinja2

from nool.common import NoolExpectedError
from nool.names import InvalidNameError, validate_name

XDG_CONFIG_NOOL = Path(appdirs.user_config_dir("nool"))
CONFIG_PATH = XDG_CONFIG_NOOL / "config.toml"

XDG_STATE_NOOL = Path(appdirs.user_state_dir("nool"))

DEFAULT_NEW_FILE_TEMPLATE = "% New LaTeX file\n\\documentclass{article}\n\\begin{document}\n\n\\end{document}"

MutationPolicy = Literal["queue", "reject"]
MUTATION_POLICIES: list[MutationPolicy] = ["queue", "reject"]

logger = logging.getLogger(__name__)

# Used by the default-name keys, which are parsed the same way.
_NAME_KEYS = ["new_folder_name", "new_file_name", "virtual_root_name"]


class ConfigNotFoundError(NoolExpectedError):
    pass


class ConfigDecodeError(NoolExpectedError):
    pass


class InvalidConfigValueError(NoolExpectedError, ValueError):
    pass


@dataclass(frozen=True)
class Config:
    # The directory that the tree is backed onto. None means we work on a virtual tree.
    root_dir: Path | None = None
    state_dir: Path = XDG_STATE_NOOL

    # Entries starting with this prefix are not shown and never synced.
    hidden_prefix: str = "."

    new_folder_name: str = "NewFolder"
    new_file_name: str = "NewFile"
    new_file_extension: str = ".tex"
    # A Jinja template receiving `name` and `stem`, rendered into every newly created file.
    new_file_template: str = DEFAULT_NEW_FILE_TEMPLATE

    # Send deleted entries to the OS trash instead of unlinking them. Only applies to local storage.
    trash_deletes: bool = False
    # What to do with a mutation that arrives while another is in flight: wait for it, or refuse.
    mutation_policy: MutationPolicy = "queue"
    notification_duration_ms: int = 3000
    # The root name of the virtual tree. Virtual node ids are rooted at this name.
    virtual_root_name: str = "virtual"

    # Not configurable; tracks where we were parsed from for error messages.
    source: Path | None = field(default=None, compare=False)

    @classmethod
    def default(cls) -> Config:
        return cls()

    @classmethod
    def parse(cls, config_path_override: Path | None = None) -> Config:
        # As we parse, delete consumed values from the data dictionary. If any are left over at the
        # end of the config, warn that unknown config keys were found.
        cfgpath = config_path_override or CONFIG_PATH
        try:
            with cfgpath.open("rb") as fp:
                data = tomllib.load(fp)
        except FileNotFoundError as e:
            raise ConfigNotFoundError(f"Configuration file not found ({cfgpath})") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigDecodeError(f"Failed to decode configuration file: invalid TOML: {e}") from e

        kwargs: dict[str, Any] = {"source": cfgpath}

        for key in ["root_dir", "state_dir"]:
            try:
                kwargs[key] = Path(data[key]).expanduser()
                del data[key]
            except KeyError:
                pass
            except (TypeError, ValueError) as e:
                raise InvalidConfigValueError(
                    f"Invalid value for {key} in configuration file ({cfgpath}): must be a path"
                ) from e

        try:
            hidden_prefix = data["hidden_prefix"]
            del data["hidden_prefix"]
            if not isinstance(hidden_prefix, str):
                raise ValueError(f"Must be a string: got {type(hidden_prefix)}")
            kwargs["hidden_prefix"] = hidden_prefix
        except KeyError:
            pass
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid value for hidden_prefix in configuration file ({cfgpath}): {e}"
            ) from e

        hidden_prefix = kwargs.get("hidden_prefix", cls.hidden_prefix)
        for key in _NAME_KEYS:
            try:
                kwargs[key] = validate_name(data[key])
                del data[key]
            except KeyError:
                continue
            except InvalidNameError as e:
                raise InvalidConfigValueError(
                    f"Invalid value for {key} in configuration file ({cfgpath}): {e.reason}"
                ) from e
            # Rebuild skips hidden names, so the created entry would never show up.
            if key != "virtual_root_name" and hidden_prefix and kwargs[key].startswith(hidden_prefix):
                raise InvalidConfigValueError(
                    f"Invalid value for {key} in configuration file ({cfgpath}): "
                    f"must not start with the hidden prefix {hidden_prefix!r}"
                )

        try:
            new_file_extension = data["new_file_extension"]
            del data["new_file_extension"]
            if not isinstance(new_file_extension, str):
                raise ValueError(f"Must be a string: got {type(new_file_extension)}")
            if new_file_extension and not new_file_extension.startswith("."):
                raise ValueError(f"Must be empty or start with a dot: got {new_file_extension}")
            kwargs["new_file_extension"] = new_file_extension
        except KeyError:
            pass
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid value for new_file_extension in configuration file ({cfgpath}): {e}"
            ) from e

        try:
            new_file_template = data["new_file_template"]
            del data["new_file_template"]
            if not isinstance(new_file_template, str):
                raise ValueError(f"Must be a string: got {type(new_file_template)}")
            jinja2.Environment().parse(new_file_template)
            kwargs["new_file_template"] = new_file_template
        except KeyError:
            pass
        except jinja2.exceptions.TemplateSyntaxError as e:
            raise InvalidConfigValueError(
                f"Invalid value for new_file_template in configuration file ({cfgpath}): "
                f"invalid template: {e}"
            ) from e
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid value for new_file_template in configuration file ({cfgpath}): {e}"
            ) from e

        try:
            trash_deletes = data["trash_deletes"]
            del data["trash_deletes"]
            if not isinstance(trash_deletes, bool):
                raise ValueError(f"Must be a bool: got {type(trash_deletes)}")
            kwargs["trash_deletes"] = trash_deletes
        except KeyError:
            pass
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid value for trash_deletes in configuration file ({cfgpath}): {e}"
            ) from e

        try:
            mutation_policy = data["mutation_policy"]
            del data["mutation_policy"]
            if mutation_policy not in MUTATION_POLICIES:
                raise ValueError(f"Must be one of {', '.join(MUTATION_POLICIES)}: got {mutation_policy}")
            kwargs["mutation_policy"] = mutation_policy
        except KeyError:
            pass
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid value for mutation_policy in configuration file ({cfgpath}): {e}"
            ) from e

        try:
            notification_duration_ms = data["notification_duration_ms"]
            del data["notification_duration_ms"]
            if not isinstance(notification_duration_ms, int) or notification_duration_ms < 0:
                raise ValueError(f"Must be a non-negative integer: got {notification_duration_ms}")
            kwargs["notification_duration_ms"] = notification_duration_ms
        except KeyError:
            pass
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid value for notification_duration_ms in configuration file ({cfgpath}): {e}"
            ) from e

        if data:
            unrecognized_accessors: list[str] = []
            # Do a DFS over the data keys to assemble the map of unknown keys. State is a tuple of
            # ("accessor", node).
            dfs_state: deque[tuple[str, Any]] = deque([("", data)])
            while dfs_state:
                accessor, node = dfs_state.pop()
                if isinstance(node, dict):
                    for k, v in node.items():
                        child_accessor = k if not accessor else f"{accessor}.{k}"
                        dfs_state.append((child_accessor, v))
                    continue
                unrecognized_accessors.append(accessor)
            if unrecognized_accessors:
                joined = ", ".join(unrecognized_accessors)
                logger.warning(f"Unrecognized options found in configuration file: {joined}")

        return Config(**kwargs)

    @classmethod
    def parse_or_default(cls, config_path_override: Path | None = None) -> Config:
        """Parse the configuration file, or fall back to the defaults when there is none."""
        try:
            return cls.parse(config_path_override)
        except ConfigNotFoundError:
            if config_path_override is not None:
                raise
            logger.debug(f"No configuration file at {CONFIG_PATH}: using defaults")
            return cls.default()

    @functools.cached_property
    def compiled_new_file_template(self) -> jinja2.Template:
        return jinja2.Environment(keep_trailing_newline=True).from_string(self.new_file_template)

    @functools.cached_property
    def virtual_workspace_path(self) -> Path:
        return self.state_dir / "virtual.toml"

    def render_new_file(self, name: str) -> bytes:
        stem = name.removesuffix(self.new_file_extension) if self.new_file_extension else name
        return self.compiled_new_file_template.render(name=name, stem=stem).encode("utf-8")
