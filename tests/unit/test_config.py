"""
Unit Tests for Configuration Loading

The env files the loader can pick must ship with the repo.
"""

from pathlib import Path

import pytest
from dotenv import dotenv_values

import core.config

pytestmark = pytest.mark.unit

REPO_ROOT = Path(__file__).resolve().parents[2]


def test_mapped_env_files_ship_with_repo():
    for env_file in core.config.env_files.values():
        assert (REPO_ROOT / env_file).is_file(), env_file


def test_dev_env_covers_workflow_settings():
    values = dotenv_values(REPO_ROOT / "deployment/environments/dev.env")

    for key in ("POSTGRES_HOST", "NATS_HOST", "FEDEX_CLIENT_ID", "HAZMAT_THRESHOLD", "LABEL_CLAIM_TTL_SECONDS"):
        assert key in values
    assert values["HAZMAT_THRESHOLD"] == "30"
