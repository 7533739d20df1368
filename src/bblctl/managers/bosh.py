"""BOSH manager that drives ``bosh create-env`` and ``bosh delete-env``."""
from __future__ import annotations

import json
import os
import subprocess
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from ..state.models import BOSH, State
from .base import BOSHCreateError, BOSHError, TerraformOutputs, run_process

DIRECTOR_PORT = 25555
DIRECTOR_USERNAME = "admin"
REQUIRED_OUTPUTS = ("director_address",)

VARS_FILENAME = "vars.yml"
VARS_STORE_FILENAME = "vars-store.yml"
STATE_FILENAME = "state.json"


@dataclass(frozen=True)
class BOSHCLIManager:
    """Create and delete the BOSH director for an environment."""

    working_dir: Path
    manifest: Path | None = None
    bosh_bin: str = "bosh"

    def create_director(self, state: State, outputs: TerraformOutputs) -> State:
        """Run ``bosh create-env`` and return *state* describing the director."""
        manifest = self._require_manifest()
        missing = [name for name in REQUIRED_OUTPUTS if not outputs.get(name)]
        if missing:
            joined = ", ".join(missing)
            raise BOSHError(f"Terraform outputs are missing required values: {joined}.")

        director_name = state.bosh.director_name or f"bosh-{state.env_id}"
        with self._materialised(state, outputs, director_name) as paths:
            try:
                self._run_command(
                    [
                        self.bosh_bin,
                        "create-env",
                        str(manifest),
                        "--state",
                        str(paths["state"]),
                        "--vars-store",
                        str(paths["vars_store"]),
                        "--vars-file",
                        str(paths["vars"]),
                    ]
                )
            except BOSHError as exc:
                # create-env may have recorded VM/disk CIDs and generated
                # credentials before failing; keep them for the re-run.
                partial = replace(
                    state,
                    bosh=replace(
                        state.bosh,
                        director_name=director_name,
                        credentials=_read_yaml(paths["vars_store"]),
                        state=_read_json(paths["state"]),
                    ),
                )
                raise BOSHCreateError(str(exc), partial) from exc
            credentials = _read_yaml(paths["vars_store"])
            bosh_state = _read_json(paths["state"])

        director_ssl = credentials.get("director_ssl")
        ssl = director_ssl if isinstance(director_ssl, Mapping) else {}
        bosh = BOSH(
            director_name=director_name,
            director_username=DIRECTOR_USERNAME,
            director_password=str(credentials.get("admin_password", "")),
            director_address=f"https://{outputs['director_address']}:{DIRECTOR_PORT}",
            director_ssl_ca=str(ssl.get("ca", "")),
            director_ssl_certificate=str(ssl.get("certificate", "")),
            director_ssl_private_key=str(ssl.get("private_key", "")),
            credentials=credentials,
            state=bosh_state,
            manifest=manifest.read_text(encoding="utf-8") if manifest.exists() else "",
        )
        return replace(state, bosh=bosh)

    def delete_director(self, state: State, outputs: TerraformOutputs) -> State:
        """Run ``bosh delete-env`` and return *state* with ``bosh`` cleared."""
        if not state.has_director:
            return state
        manifest = self._require_manifest()
        with self._materialised(state, outputs, state.bosh.director_name) as paths:
            self._run_command(
                [
                    self.bosh_bin,
                    "delete-env",
                    str(manifest),
                    "--state",
                    str(paths["state"]),
                    "--vars-store",
                    str(paths["vars_store"]),
                    "--vars-file",
                    str(paths["vars"]),
                ]
            )
        return replace(state, bosh=BOSH())

    # ------------------------------------------------------------------
    def _require_manifest(self) -> Path:
        if self.manifest is None:
            raise BOSHError(
                "No BOSH director manifest configured; set bosh.manifest in the bblctl config."
            )
        return self.manifest

    @contextmanager
    def _materialised(
        self,
        state: State,
        outputs: TerraformOutputs,
        director_name: str,
    ) -> Iterator[dict[str, Path]]:
        paths = {
            "vars": self.working_dir / VARS_FILENAME,
            "vars_store": self.working_dir / VARS_STORE_FILENAME,
            "state": self.working_dir / STATE_FILENAME,
        }
        variables: dict[str, Any] = {str(key): value for key, value in outputs.items()}
        variables["director_name"] = director_name
        variables["private_key"] = state.key_pair.private_key
        try:
            self.working_dir.mkdir(parents=True, exist_ok=True)
            _write_secret(paths["vars"], yaml.safe_dump(variables, sort_keys=True))
            _write_secret(
                paths["vars_store"],
                yaml.safe_dump(dict(state.bosh.credentials), sort_keys=True),
            )
            _write_secret(paths["state"], json.dumps(dict(state.bosh.state), indent=2))
        except OSError as exc:
            raise BOSHError(f"Failed to prepare BOSH directory {self.working_dir}: {exc}") from exc
        try:
            yield paths
        finally:
            for path in paths.values():
                path.unlink(missing_ok=True)

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        return run_process(
            args,
            cwd=self.working_dir,
            env=None,
            error_cls=BOSHError,
            error_prefix=f"{self.bosh_bin} {args[1] if len(args) > 1 else ''}".rstrip(),
            check=check,
        )


def _write_secret(path: Path, content: str) -> None:
    path.write_text(content, encoding="utf-8")
    os.chmod(path, 0o600)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, yaml.YAMLError) as exc:
        raise BOSHError(f"Failed to read {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise BOSHError(f"{path} must contain a mapping.")
    return {str(key): value for key, value in data.items()}


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8") or "{}")
    except FileNotFoundError:
        return {}
    except (OSError, json.JSONDecodeError) as exc:
        raise BOSHError(f"Failed to read {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise BOSHError(f"{path} must contain a JSON object.")
    return {str(key): value for key, value in data.items()}


__all__ = ["BOSHCLIManager", "DIRECTOR_PORT", "DIRECTOR_USERNAME"]
