"""
Compiler settings.

Settings come from a JSON file: `modfile.json` in the working directory,
else `~/.modfile/config.json`, else the defaults below.
"""
import json
import os
from typing import List

from pydantic import BaseModel, ConfigDict

CONFIG_FILE = "modfile.json"
USER_CONFIG_FILE = os.path.join("~", ".modfile", "config.json")

# Functions a MODULE.bazel file is expected to call.
DEFAULT_TOPLEVELS = [
    "module",
    "module_import",
    "bazel_dep",
    "archive_override",
    "git_override",
    "local_path_override",
    "multiple_version_override",
    "single_version_override",
    "register_execution_platforms",
    "register_toolchains",
    "use_extension",
    "use_repo",
    "use_repo_rule",
    "include",
]


class CompilerSettings(BaseModel):
    """
    Options that shape parsing, checking and evaluation of module files.

    Attributes:
        where: Plural description of the checked files, used in checker messages.
        file_kind: Singular file name used in compile failure messages.
        allow_toplevel_rebinding: Whether a global may be assigned more than once.
        toplevels: Names the CLI predeclares as recording functions.
        verbose: Whether debug logging is enabled.
    """
    model_config = ConfigDict(frozen=True)

    where: str = "MODULE.bazel files"
    file_kind: str = "MODULE.bazel"
    allow_toplevel_rebinding: bool = False
    toplevels: List[str] = DEFAULT_TOPLEVELS
    verbose: bool = False


def load_settings(paths=None):
    """
    Load settings from the first config file that exists.

    Args:
        paths: Candidate files, in priority order. Defaults to the project
            file, then the user file.

    Raises:
        json.JSONDecodeError, pydantic.ValidationError: if the file found is malformed.
    """
    if paths is None:
        paths = [CONFIG_FILE, os.path.expanduser(USER_CONFIG_FILE)]
    for p in paths:
        if os.path.exists(p):
            with open(p, "r") as f:
                return CompilerSettings.model_validate(json.load(f))
    return CompilerSettings()
