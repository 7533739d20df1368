"""Terraform manager that shells out to the ``terraform`` binary.

The working directory holds the user's templates. Before each run the
manager materialises ``terraform.tfstate`` from ``State.tf_state`` and writes
``bbl.tfvars.json`` from the IaaS configuration; after the run the refreshed
tfstate is read back into a new :class:`State`.
"""
from __future__ import annotations

import json
import os
import re
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path

from packaging.version import InvalidVersion, Version

from ..state.models import State
from .base import (
    TerraformApplyError,
    TerraformError,
    TerraformOutputs,
    freeze_outputs,
    run_process,
)

TFSTATE_FILENAME = "terraform.tfstate"
TFVARS_FILENAME = "bbl.tfvars.json"
_VERSION_PATTERN = re.compile(r"v(\d+\.\d+\.\d+)")


@dataclass(frozen=True)
class TerraformCLIManager:
    """Run terraform in *working_dir* on behalf of the commands."""

    working_dir: Path
    terraform_bin: str = "terraform"
    min_version: str = "0.11.0"

    @property
    def tfstate_path(self) -> Path:
        """Return the path terraform reads and writes its state at."""
        return self.working_dir / TFSTATE_FILENAME

    @property
    def tfvars_path(self) -> Path:
        """Return the path of the generated variables file."""
        return self.working_dir / TFVARS_FILENAME

    def version(self) -> Version:
        """Return the installed terraform version."""
        result = self._run_command([self.terraform_bin, "version"])
        match = _VERSION_PATTERN.search(result.stdout or "")
        if match is None:
            raise TerraformError(f"Unable to determine terraform version from {result.stdout!r}.")
        try:
            return Version(match.group(1))
        except InvalidVersion as exc:  # pragma: no cover - regex guards the format
            raise TerraformError(f"Invalid terraform version {match.group(1)!r}.") from exc

    def validate_version(self) -> None:
        """Raise :class:`TerraformError` when terraform is older than required."""
        installed = self.version()
        if installed < Version(self.min_version):
            raise TerraformError(
                f"Terraform version must be at least v{self.min_version}; found v{installed}."
            )

    def apply(self, state: State) -> State:
        """Run ``terraform apply`` and return *state* with the refreshed tfstate."""
        self.validate_version()
        self._prepare(state)
        self._run_command([self.terraform_bin, "init", "-input=false"])
        try:
            self._run_command(
                [
                    self.terraform_bin,
                    "apply",
                    "-auto-approve",
                    "-input=false",
                    f"-var-file={TFVARS_FILENAME}",
                ]
            )
        except TerraformError as exc:
            partial = replace(state, tf_state=self._read_tfstate())
            raise TerraformApplyError(str(exc), partial) from exc
        return replace(state, tf_state=self._read_tfstate())

    def destroy(self, state: State) -> State:
        """Run ``terraform destroy`` and return *state* without a tfstate."""
        if not state.tf_state:
            return state
        self.validate_version()
        self._prepare(state)
        self._run_command([self.terraform_bin, "init", "-input=false"])
        try:
            self._run_command(
                [
                    self.terraform_bin,
                    "destroy",
                    "-auto-approve",
                    "-input=false",
                    f"-var-file={TFVARS_FILENAME}",
                ]
            )
        except TerraformError as exc:
            partial = replace(state, tf_state=self._read_tfstate())
            raise TerraformApplyError(str(exc), partial) from exc
        self.tfstate_path.unlink(missing_ok=True)
        return replace(state, tf_state="")

    def get_outputs(self, state: State) -> TerraformOutputs:
        """Return ``terraform output -json`` flattened to ``{name: value}``."""
        if not state.tf_state:
            return freeze_outputs({})
        self._prepare(state)
        result = self._run_command([self.terraform_bin, "output", "-json"])
        try:
            raw = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise TerraformError(f"terraform output returned invalid JSON: {exc}") from exc
        if not isinstance(raw, Mapping):
            raise TerraformError("terraform output must be a JSON object.")
        outputs: dict[str, object] = {}
        for name, entry in raw.items():
            if isinstance(entry, Mapping) and "value" in entry:
                outputs[str(name)] = entry["value"]
            else:
                outputs[str(name)] = entry
        return freeze_outputs(outputs)

    # ------------------------------------------------------------------
    def _prepare(self, state: State) -> None:
        try:
            self.working_dir.mkdir(parents=True, exist_ok=True)
            if state.tf_state:
                self.tfstate_path.write_text(state.tf_state, encoding="utf-8")
                os.chmod(self.tfstate_path, 0o600)
            else:
                self.tfstate_path.unlink(missing_ok=True)
            self.tfvars_path.write_text(
                json.dumps(build_tfvars(state), indent=2, sort_keys=True) + "\n",
                encoding="utf-8",
            )
            os.chmod(self.tfvars_path, 0o600)
        except OSError as exc:
            raise TerraformError(
                f"Failed to prepare terraform directory {self.working_dir}: {exc}"
            ) from exc

    def _read_tfstate(self) -> str:
        try:
            return self.tfstate_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except OSError as exc:
            raise TerraformError(f"Failed to read {self.tfstate_path}: {exc}") from exc

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        env = dict(os.environ)
        env["TF_IN_AUTOMATION"] = "1"
        joined = " ".join(args[1:2])
        return run_process(
            args,
            cwd=self.working_dir,
            env=env,
            error_cls=TerraformError,
            error_prefix=f"{self.terraform_bin} {joined}".rstrip(),
            check=check,
        )


def build_tfvars(state: State) -> dict[str, object]:
    """Return the terraform variables derived from *state*."""
    tfvars: dict[str, object] = {
        "env_id": state.env_id,
        "iaas": state.iaas,
        "ssh_public_key": state.key_pair.public_key,
        "no_director": state.no_director,
    }
    if state.iaas == "aws":
        tfvars.update(
            {
                "access_key": state.aws.access_key_id,
                "secret_key": state.aws.secret_access_key,
                "region": state.aws.region,
            }
        )
    elif state.iaas == "gcp":
        tfvars.update(
            {
                "credentials": state.gcp.service_account_key,
                "project_id": state.gcp.project_id,
                "region": state.gcp.region,
                "zone": state.gcp.zone,
            }
        )
    elif state.iaas == "azure":
        tfvars.update(
            {
                "subscription_id": state.azure.subscription_id,
                "tenant_id": state.azure.tenant_id,
                "client_id": state.azure.client_id,
                "client_secret": state.azure.client_secret,
                "region": state.azure.region,
            }
        )
    return tfvars


__all__ = ["TFSTATE_FILENAME", "TFVARS_FILENAME", "TerraformCLIManager", "build_tfvars"]
