# /*
# Copyright 2026 The Grounds Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Merging exported cluster credentials into the user's kubeconfig."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

import yaml

from grounds_dev.constants import KUBECONFIG_FILE_MODE

ENTRY_SECTIONS = ("clusters", "contexts", "users")


def load_kubeconfig(path: Path) -> dict:
    """Read a kubeconfig file, treating an empty file as an empty config.

    Raises:
        ValueError: If the file is not YAML or not a mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as err:
            raise ValueError(f"{path} is not valid YAML: {err}") from err
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} is not a kubeconfig mapping")
    return data


def write_kubeconfig(path: Path, config: dict) -> None:
    """Write a kubeconfig atomically with owner-only permissions.

    Args:
        path: Destination file.
        config: Kubeconfig content.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
        os.chmod(tmp_name, KUBECONFIG_FILE_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _merge_entries(existing: list[dict], incoming: list[dict]) -> list[dict]:
    """Union two named entry lists; incoming entries replace same-named ones in place."""
    merged = [dict(entry) for entry in existing]
    index = {entry.get("name"): pos for pos, entry in enumerate(merged)}
    for entry in incoming:
        name = entry.get("name")
        if name in index:
            merged[index[name]] = dict(entry)
        else:
            index[name] = len(merged)
            merged.append(dict(entry))
    return merged


def merge_configs(base: dict, incoming: dict) -> dict:
    """Return *base* with the clusters, contexts and users of *incoming* merged in.

    Entries are keyed by name. Unrelated entries of *base* are kept, same-named
    entries are overwritten by *incoming*. The current-context of *base* wins;
    the one from *incoming* is adopted only when *base* has none.

    Args:
        base: Existing kubeconfig content.
        incoming: Kubeconfig exported for the new cluster.

    Returns:
        New merged kubeconfig dictionary; the inputs are not modified.
    """
    merged = dict(base)
    merged.setdefault("apiVersion", incoming.get("apiVersion", "v1"))
    merged.setdefault("kind", incoming.get("kind", "Config"))
    for section in ENTRY_SECTIONS:
        merged[section] = _merge_entries(base.get(section) or [], incoming.get(section) or [])
    if not merged.get("current-context") and incoming.get("current-context"):
        merged["current-context"] = incoming["current-context"]
    merged.setdefault("preferences", incoming.get("preferences", {}))
    return merged


def merge_kubeconfig(exported: Path, global_path: Path) -> bool:
    """Merge an exported kubeconfig into the global store.

    Args:
        exported: Kubeconfig written for the cluster.
        global_path: The user's kubeconfig (typically ``~/.kube/config``).

    Returns:
        True if an existing store was merged, False if the export was installed as a new store.
    """
    if not global_path.exists():
        global_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(exported, global_path)
        global_path.chmod(KUBECONFIG_FILE_MODE)
        return False
    merged = merge_configs(load_kubeconfig(global_path), load_kubeconfig(exported))
    write_kubeconfig(global_path, merged)
    return True


def remove_entries(global_path: Path, cluster: str, context: str, user: str) -> bool:
    """Remove one cluster's entries from a kubeconfig.

    Args:
        global_path: Kubeconfig to edit.
        cluster: Cluster entry name.
        context: Context entry name.
        user: User entry name.

    Returns:
        True if anything was removed.
    """
    if not global_path.exists():
        return False
    config = load_kubeconfig(global_path)
    targets = {"clusters": cluster, "contexts": context, "users": user}
    removed = False
    for section, name in targets.items():
        entries = config.get(section) or []
        kept = [entry for entry in entries if entry.get("name") != name]
        if len(kept) != len(entries):
            config[section] = kept
            removed = True
    if config.get("current-context") == context:
        config["current-context"] = ""
        removed = True
    if removed:
        write_kubeconfig(global_path, config)
    return removed
