"""
CLI tests.

Run with: pytest tests/test_cli.py -v
"""

import json

import pytest

from tyron import __version__
from tyron.cli import TyronCLI
from tyron.identity import GuardianId
from tyron.keys import save_keypair

from conftest import make_key


def run(capsys, *args):
    code = TyronCLI().run(list(args))
    captured = capsys.readouterr()
    out = json.loads(captured.out) if code == 0 and captured.out.strip() else None
    return code, out, captured.err


@pytest.fixture
def keys(tmp_path):
    """Key files: owner, new owner and four guardians."""
    paths = {}
    for name, n in [("owner", 1), ("new_owner", 3), ("g1", 10), ("g2", 11), ("g3", 12), ("g4", 13)]:
        path = tmp_path / f"{name}.json"
        save_keypair(path, make_key(n))
        paths[name] = str(path)
    return paths


@pytest.fixture
def state_file(tmp_path, keys, capsys):
    path = str(tmp_path / "account.json")
    code, _, err = run(
        capsys, "account", "create", "--state", path, "--owner", keys["owner"],
        "-g", keys["g1"], "-g", keys["g2"], "-g", keys["g3"],
    )
    assert code == 0, err
    return path


class TestKeyCommands:
    """keygen / identity"""

    def test_keygen(self, tmp_path, capsys):
        out_path = tmp_path / "new.json"
        code, out, _ = run(capsys, "keygen", "--out", str(out_path))
        assert code == 0
        assert out_path.exists()
        assert out["did"].startswith("did:key:z")

    def test_keygen_refuses_overwrite(self, tmp_path, capsys):
        out_path = tmp_path / "new.json"
        out_path.write_text("{}", encoding="utf-8")
        code, _, err = run(capsys, "keygen", "--out", str(out_path))
        assert code == 1
        assert "Refusing to overwrite" in err

    def test_identity_from_key_file(self, keys, capsys):
        code, out, _ = run(capsys, "identity", keys["g1"])
        assert code == 0
        assert out["identity"] == make_key(10).identity.hex
        assert out["guardian_id"] == GuardianId.of(make_key(10).identity).hex

    def test_identity_from_did(self, capsys):
        did = make_key(10).identity.to_did_key()
        code, out, _ = run(capsys, "identity", did)
        assert out["identity"] == make_key(10).identity.hex

    def test_bad_identity(self, capsys):
        code, _, err = run(capsys, "identity", "not-an-identity")
        assert code == 1
        assert "Error:" in err


class TestAccountCommands:
    """account ..."""

    def test_create(self, state_file, capsys):
        code, out, _ = run(capsys, "account", "params", "--state", state_file)
        assert code == 0
        assert out == {"guardian_count": 3, "threshold": 3, "recovery_enabled": True}

    def test_create_refuses_overwrite(self, state_file, keys, capsys):
        code, _, err = run(capsys, "account", "create", "--state", state_file, "--owner", keys["owner"])
        assert code == 1

    def test_show(self, state_file, capsys):
        code, out, _ = run(capsys, "account", "show", "--state", state_file)
        assert out["owner"] == make_key(1).identity.hex
        assert out["version"] == 0

    def test_add_and_remove_guardians(self, state_file, keys, capsys):
        code, out, _ = run(
            capsys, "account", "add-guardians", "--state", state_file,
            "--caller", keys["owner"], "-g", keys["g4"],
        )
        assert code == 0
        assert out["guardian_count"] == 4

        code, out, _ = run(capsys, "account", "is-guardian", "--state", state_file, "-g", keys["g4"])
        assert out["is_guardian"] is True

        code, out, _ = run(
            capsys, "account", "remove-guardians", "--state", state_file,
            "--caller", keys["owner"], "-g", keys["g4"],
        )
        assert code == 0
        assert out["guardian_count"] == 3

    def test_non_owner_rejected(self, state_file, keys, capsys):
        code, _, err = run(
            capsys, "account", "add-guardians", "--state", state_file,
            "--caller", keys["g1"], "-g", keys["g4"],
        )
        assert code == 1
        assert "NotOwner" in err

    def test_propose_and_accept(self, state_file, keys, capsys):
        code, out, _ = run(
            capsys, "account", "propose", "--state", state_file,
            "--caller", keys["owner"], "--new-owner", keys["new_owner"],
        )
        assert out["pending_owner"] == make_key(3).identity.hex

        code, out, _ = run(capsys, "account", "accept", "--state", state_file, "--caller", keys["new_owner"])
        assert code == 0
        assert out["owner"] == make_key(3).identity.hex
        assert out["version"] == 2

    def test_check_signature(self, state_file, capsys):
        digest = b"\x11" * 32
        signature = make_key(1).sign(digest)
        code, out, _ = run(
            capsys, "account", "check-signature", "--state", state_file,
            "--digest", digest.hex(), "--signature", signature.hex(),
        )
        assert out == {"valid": True}


class TestRecoveryCommands:
    """recovery digest / sign and account recover"""

    def _votes(self, capsys, state_file, keys, names):
        votes = []
        for name in names:
            code, out, _ = run(
                capsys, "recovery", "sign", "--state", state_file,
                "--key", keys[name], "--new-owner", keys["new_owner"],
            )
            assert code == 0
            votes.append(f"{keys[name]}:{out['signature']}")
        return votes

    def test_digest_matches_signed_digest(self, state_file, keys, capsys):
        _, digest_out, _ = run(capsys, "recovery", "digest", "--state", state_file, "--new-owner", keys["new_owner"])
        _, sign_out, _ = run(
            capsys, "recovery", "sign", "--state", state_file,
            "--key", keys["g1"], "--new-owner", keys["new_owner"],
        )
        assert digest_out["digest"] == sign_out["digest"]

    def test_recover(self, state_file, keys, capsys):
        votes = self._votes(capsys, state_file, keys, ["g1", "g2", "g3"])
        args = ["account", "recover", "--state", state_file, "--new-owner", keys["new_owner"]]
        for vote in votes:
            args += ["--vote", vote]

        code, out, err = run(capsys, *args)

        assert code == 0, err
        assert out["owner"] == make_key(3).identity.hex
        assert out["votes"] == 3

    def test_recover_from_votes_file(self, tmp_path, state_file, keys, capsys):
        entries = []
        for vote in self._votes(capsys, state_file, keys, ["g1", "g2", "g3"]):
            guardian, _, signature = vote.rpartition(":")
            entries.append({"guardian": guardian, "signature": signature})
        votes_file = tmp_path / "votes.json"
        votes_file.write_text(json.dumps(entries), encoding="utf-8")

        code, out, err = run(
            capsys, "account", "recover", "--state", state_file,
            "--new-owner", keys["new_owner"], "--votes-file", str(votes_file),
        )
        assert code == 0, err
        assert out["owner"] == make_key(3).identity.hex

    def test_recover_without_quorum(self, state_file, keys, capsys):
        votes = self._votes(capsys, state_file, keys, ["g1", "g2"])
        code, _, err = run(
            capsys, "account", "recover", "--state", state_file,
            "--new-owner", keys["new_owner"], "--vote", votes[0], "--vote", votes[1],
        )
        assert code == 1
        assert "RecoveryFailed" in err

        _, out, _ = run(capsys, "account", "show", "--state", state_file)
        assert out["owner"] == make_key(1).identity.hex

    @pytest.mark.parametrize("entries", [
        [{"guardian": "0x" + "11" * 32}],
        [{"signature": "00"}],
        ["not-an-object"],
        [{"guardian": 7, "signature": "00"}],
    ])
    def test_malformed_votes_file(self, tmp_path, state_file, keys, capsys, entries):
        votes_file = tmp_path / "votes.json"
        votes_file.write_text(json.dumps(entries), encoding="utf-8")

        code, _, err = run(
            capsys, "account", "recover", "--state", state_file,
            "--new-owner", keys["new_owner"], "--votes-file", str(votes_file),
        )

        assert code == 1
        assert "Votes file entries need" in err

    def test_tampered_threshold_refused(self, state_file, keys, capsys):
        votes = self._votes(capsys, state_file, keys, ["g1"])
        with open(state_file, encoding="utf-8") as f:
            data = json.load(f)
        data["threshold"] = 1
        with open(state_file, "w", encoding="utf-8") as f:
            json.dump(data, f)

        code, _, err = run(
            capsys, "account", "recover", "--state", state_file,
            "--new-owner", keys["new_owner"], "--vote", votes[0],
        )

        assert code == 1
        assert "StateFileError" in err
        assert "threshold" in err

    def test_recover_needs_votes(self, state_file, keys, capsys):
        code, _, err = run(capsys, "account", "recover", "--state", state_file, "--new-owner", keys["new_owner"])
        assert code == 1
        assert "No votes" in err


class TestConfigCommands:
    """config ..."""

    def test_config_get(self, capsys):
        code, out, _ = run(capsys, "config", "get", "domain.chain_id")
        assert out == {"path": "domain.chain_id", "value": 31337}

    def test_config_file_option(self, tmp_path, capsys):
        path = tmp_path / "tyron.yaml"
        path.write_text("domain:\n  chain_id: 5\n", encoding="utf-8")
        code, out, _ = run(capsys, "--config", str(path), "config", "get", "domain.chain_id")
        assert out["value"] == 5

    def test_config_validate(self, capsys):
        code, out, _ = run(capsys, "config", "validate")
        assert out == {"valid": True, "errors": []}

    def test_config_schema(self, capsys):
        code, out, _ = run(capsys, "config", "schema")
        assert "recovery" in out["properties"]

    def test_yaml_output(self, capsys):
        code = TyronCLI().run(["--format", "yaml", "config", "get", "domain.name"])
        assert code == 0
        assert "value: Tyron" in capsys.readouterr().out


class TestMisc:
    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            TyronCLI().run(["--version"])
        assert __version__ in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert TyronCLI().run([]) == 0
        assert "usage" in capsys.readouterr().out.lower()
