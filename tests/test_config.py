from __future__ import annotations

from pathlib import Path

import keyring
import pytest

from forgesafe.core.config import ConfigLoader, ProposerIdentity, load_proposer, load_safe_config, validate_environment
from forgesafe.errors import ConfigurationError, ErrorCode

from conftest import PRIVATE_KEY, PROPOSER_ADDRESS, SAFE_ADDRESS


def _environ(**overrides: str) -> dict:
    values = {
        "RPC_URL": "https://eth-sepolia.example.org/v2/secret",
        "SAFE_ADDRESS": SAFE_ADDRESS.lower(),
        "SAFE_API_KEY": "api-key",
        "PROPOSER_PRIVATE_KEY": PRIVATE_KEY,
    }
    values.update(overrides)
    return {key: value for key, value in values.items() if value is not None}


def _loader(tmp_path: Path, logbook, environ: dict, env_file: str = "") -> ConfigLoader:
    path = tmp_path / ".env.safe"
    if env_file:
        path.write_text(env_file, encoding="utf-8")
    return ConfigLoader(env_file=path, environ=environ, logbook=logbook)


def test_complete_environment(tmp_path, logbook) -> None:
    config, identity = _loader(tmp_path, logbook, _environ()).validate()

    assert config.chain_id == 11155111
    assert config.safe_address == SAFE_ADDRESS
    assert config.tx_service_url is None
    assert identity.address == PROPOSER_ADDRESS
    assert identity.private_key == PRIVATE_KEY


def test_all_missing_variables_reported_together(tmp_path, logbook) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        _loader(tmp_path, logbook, {}).validate()

    errors = excinfo.value.context["errors"]
    assert excinfo.value.code is ErrorCode.MISSING_ENVIRONMENT_VARIABLE
    for key in ("RPC_URL", "SAFE_ADDRESS", "SAFE_API_KEY", "PROPOSER_PRIVATE_KEY"):
        assert f"Missing required environment variable: {key}" in errors


def test_env_file_is_read_and_environment_wins(tmp_path, logbook) -> None:
    env_file = "\n".join(
        [
            "RPC_URL=https://from-file.example.org",
            f"SAFE_ADDRESS={SAFE_ADDRESS}",
            "SAFE_API_KEY=file-key",
            f"PROPOSER_PRIVATE_KEY={PRIVATE_KEY}",
            "CHAIN_ID=421614",
        ]
    )
    loader = _loader(tmp_path, logbook, {"SAFE_API_KEY": "env-key"}, env_file)

    config = loader.safe_config()

    assert config.rpc_url == "https://from-file.example.org"
    assert config.api_key == "env-key"
    assert config.chain_id == 421614


def test_secrets_fall_back_to_keyring(tmp_path, logbook) -> None:
    keyring.set_password("forgesafe", "SAFE_API_KEY", "stored-key")
    keyring.set_password("forgesafe", "PROPOSER_PRIVATE_KEY", PRIVATE_KEY[2:])
    environ = _environ(SAFE_API_KEY=None, PROPOSER_PRIVATE_KEY=None)

    config, identity = _loader(tmp_path, logbook, environ).validate()

    assert config.api_key == "stored-key"
    assert identity.private_key == PRIVATE_KEY


def test_keyring_service_override(tmp_path, logbook) -> None:
    keyring.set_password("ops-safe", "SAFE_API_KEY", "ops-key")
    environ = _environ(SAFE_API_KEY=None, FORGESAFE_KEYRING_SERVICE="ops-safe")
    assert _loader(tmp_path, logbook, environ).safe_config().api_key == "ops-key"


def test_proposer_address_must_match_key(tmp_path, logbook) -> None:
    environ = _environ(PROPOSER_ADDRESS="0x" + "12" * 20)
    with pytest.raises(ConfigurationError) as excinfo:
        _loader(tmp_path, logbook, environ).proposer()
    assert excinfo.value.code is ErrorCode.INVALID_CONFIGURATION
    assert "does not match" in excinfo.value.context["errors"][0]


def test_matching_proposer_address_is_accepted(tmp_path, logbook) -> None:
    environ = _environ(PROPOSER_ADDRESS=PROPOSER_ADDRESS.lower())
    assert _loader(tmp_path, logbook, environ).proposer().address == PROPOSER_ADDRESS


@pytest.mark.parametrize(
    "overrides, fragment",
    [
        ({"RPC_URL": "ftp://example.org"}, "Invalid RPC_URL"),
        ({"SAFE_ADDRESS": "0x1234"}, "Invalid SAFE_ADDRESS"),
        ({"CHAIN_ID": "sepolia"}, "Invalid CHAIN_ID"),
        ({"PROPOSER_PRIVATE_KEY": "0x1234"}, "Invalid PROPOSER_PRIVATE_KEY"),
    ],
)
def test_invalid_values(tmp_path, logbook, overrides, fragment) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        _loader(tmp_path, logbook, _environ(**overrides)).validate()
    assert excinfo.value.code is ErrorCode.INVALID_CONFIGURATION
    assert any(error.startswith(fragment) for error in excinfo.value.context["errors"])


def test_errors_never_contain_secrets(tmp_path, logbook) -> None:
    environ = _environ(SAFE_ADDRESS="nope", PROPOSER_ADDRESS="0x" + "12" * 20)
    with pytest.raises(ConfigurationError) as excinfo:
        _loader(tmp_path, logbook, environ).validate()
    rendered = str(excinfo.value.as_dict())
    assert PRIVATE_KEY[2:] not in rendered
    assert "v2/secret" not in rendered


def test_unknown_chain_only_warns(tmp_path, logbook) -> None:
    config = _loader(tmp_path, logbook, _environ(CHAIN_ID="10")).safe_config()
    assert config.chain_id == 10


def test_repr_hides_secrets(tmp_path, logbook) -> None:
    config, identity = _loader(tmp_path, logbook, _environ()).validate()
    assert "api-key" not in repr(config)
    assert "secret" not in repr(config)
    assert PRIVATE_KEY not in repr(identity)
    assert isinstance(identity, ProposerIdentity)


def test_tx_service_override(tmp_path, logbook) -> None:
    environ = _environ(SAFE_TX_SERVICE_URL="http://localhost:8000")
    assert _loader(tmp_path, logbook, environ).safe_config().tx_service_url == "http://localhost:8000"


def test_module_loaders_read_process_environment(tmp_path, logbook, monkeypatch) -> None:
    for key, value in _environ().items():
        monkeypatch.setenv(key, value)
    env_file = tmp_path / "missing.env"

    config = load_safe_config(env_file=env_file, logbook=logbook)
    identity = load_proposer(env_file=env_file, logbook=logbook)

    assert config.safe_address == SAFE_ADDRESS
    assert identity.address == PROPOSER_ADDRESS
    assert validate_environment(env_file=env_file, logbook=logbook) == (config, identity)


def test_error_description(tmp_path, logbook) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        _loader(tmp_path, logbook, {}).validate()
    assert excinfo.value.describe()
    assert excinfo.value.as_dict()["code"] == "MISSING_ENVIRONMENT_VARIABLE"
