"""Tests for the read-only state validator."""
from __future__ import annotations

import pytest

from bblctl.state import BOSH, AWSConfig, AzureConfig, State, StateValidationError, StateValidator
from bblctl.state.validator import missing_iaas_fields

AWS = AWSConfig(access_key_id="AKIA", secret_access_key="secret", region="us-east-1")


def test_empty_state_passes_without_requirement() -> None:
    StateValidator().validate(None, State())


def test_require_existing_rejects_empty_state() -> None:
    with pytest.raises(StateValidationError, match="bbl-state.yml not found"):
        StateValidator().validate(None, State(), require_existing=True)


def test_valid_state_passes() -> None:
    state = State(iaas="aws", env_id="bbl-env-lake", aws=AWS, bosh=BOSH(director_name="d1"))

    StateValidator().validate(None, state, require_existing=True)


def test_unsupported_iaas_rejected() -> None:
    with pytest.raises(StateValidationError, match="unsupported iaas 'vsphere'"):
        StateValidator().validate(None, State(iaas="vsphere", env_id="bbl-env-lake"))


def test_missing_credentials_rejected() -> None:
    state = State(iaas="aws", env_id="bbl-env-lake", aws=AWSConfig(region="us-east-1"))

    with pytest.raises(StateValidationError) as excinfo:
        StateValidator().validate(None, state)

    assert "aws.access_key_id" in str(excinfo.value)
    assert "aws.secret_access_key" in str(excinfo.value)


def test_no_director_with_director_rejected() -> None:
    state = State(
        iaas="aws",
        env_id="bbl-env-lake",
        aws=AWS,
        no_director=True,
        bosh=BOSH(director_name="d1"),
    )

    with pytest.raises(StateValidationError, match="no_director"):
        StateValidator().validate(None, state)


def test_missing_iaas_fields_reports_blank_fields() -> None:
    config = AzureConfig(subscription_id="sub", tenant_id="tenant", region="westus")

    assert missing_iaas_fields("azure", config) == ["client_id", "client_secret"]


def test_missing_iaas_fields_unknown_iaas() -> None:
    assert missing_iaas_fields("openstack", AWSConfig()) == []
