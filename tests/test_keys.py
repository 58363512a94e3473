# tests/test_keys.py
"""
Unit tests for funding key resolution.

Covers the explicit > environment > wallet file precedence, key
normalization and the fail-closed handling of malformed keys.
"""
import json
import pytest

from x402_bazaar.x402.keys import (
    FundingKeyResolver,
    KeySource,
    KeyStatus,
    mask_key,
    normalize_key,
    read_wallet_file,
)

ENV_VAR = "AGENT_PRIVATE_KEY"
KEY_A = "0x" + "a1" * 32
KEY_B = "0x" + "b2" * 32
KEY_C = "0x" + "c3" * 32


def make_resolver(tmp_path, environ=None, wallet=None):
    wallet_path = tmp_path / "wallet.json"
    if wallet is not None:
        wallet_path.write_text(wallet if isinstance(wallet, str) else json.dumps(wallet))
    return FundingKeyResolver(environ=environ or {}, wallet_path=wallet_path, env_var=ENV_VAR)


class TestNormalizeKey:
    """Test key normalization."""

    def test_prefixed_key(self):
        """A 0x-prefixed key is returned unchanged."""
        assert normalize_key(KEY_A) == KEY_A

    def test_adds_prefix(self):
        """A bare 64-hex key gets the 0x prefix."""
        assert normalize_key("a1" * 32) == KEY_A

    def test_lowercases(self):
        """Upper case hex and prefix are lower-cased."""
        assert normalize_key("0X" + "A1" * 32) == KEY_A

    def test_trims_whitespace(self):
        """Surrounding whitespace is removed."""
        assert normalize_key(f"  {KEY_A}\n") == KEY_A

    @pytest.mark.parametrize("raw", [None, "", "   ", "0x1234", "0x" + "g" * 64, "0x" + "a" * 65, 12345])
    def test_invalid(self, raw):
        """Malformed values normalize to None."""
        assert normalize_key(raw) is None

    def test_mask_key(self):
        """Masked keys show only prefix and suffix."""
        masked = mask_key(KEY_A)
        assert masked.startswith("0xa1a1")
        assert KEY_A not in masked


class TestReadWalletFile:
    """Test wallet file reading."""

    def test_missing_file(self, tmp_path):
        """A missing file returns None."""
        assert read_wallet_file(tmp_path / "nope.json") is None

    def test_malformed_json(self, tmp_path):
        """Invalid JSON returns None."""
        path = tmp_path / "wallet.json"
        path.write_text("{not json")
        assert read_wallet_file(path) is None

    def test_non_object(self, tmp_path):
        """A JSON array returns None."""
        path = tmp_path / "wallet.json"
        path.write_text("[1, 2]")
        assert read_wallet_file(path) is None

    def test_missing_field(self, tmp_path):
        """A wallet without privateKey returns None."""
        path = tmp_path / "wallet.json"
        path.write_text(json.dumps({"address": "0x" + "1" * 40}))
        assert read_wallet_file(path) is None

    def test_reads_private_key(self, tmp_path):
        """The privateKey field is returned raw."""
        path = tmp_path / "wallet.json"
        path.write_text(json.dumps({"address": "0x" + "1" * 40, "privateKey": KEY_C}))
        assert read_wallet_file(path) == KEY_C


class TestFundingKeyResolver:
    """Test resolution order and validation."""

    def test_explicit_wins(self, tmp_path):
        """An explicit key beats environment and wallet file."""
        resolver = make_resolver(tmp_path, {ENV_VAR: KEY_B}, {"privateKey": KEY_C})
        resolution = resolver.resolve(KEY_A)
        assert resolution.status is KeyStatus.FOUND
        assert resolution.key == KEY_A
        assert resolution.source is KeySource.EXPLICIT

    def test_environment_beats_wallet_file(self, tmp_path):
        """Without an explicit key the environment variable is used."""
        resolver = make_resolver(tmp_path, {ENV_VAR: KEY_B}, {"privateKey": KEY_C})
        resolution = resolver.resolve()
        assert resolution.key == KEY_B
        assert resolution.source is KeySource.ENVIRONMENT

    def test_wallet_file_last(self, tmp_path):
        """The wallet file is used when nothing else is set."""
        resolver = make_resolver(tmp_path, {}, {"privateKey": "c3" * 32})
        resolution = resolver.resolve()
        assert resolution.key == KEY_C
        assert resolution.source is KeySource.WALLET_FILE

    def test_nothing_configured(self, tmp_path):
        """No source gives ABSENT."""
        resolution = make_resolver(tmp_path).resolve()
        assert resolution.status is KeyStatus.ABSENT
        assert resolution.key is None

    def test_blank_explicit_key_ignored(self, tmp_path):
        """A blank explicit key counts as not supplied."""
        resolver = make_resolver(tmp_path, {ENV_VAR: KEY_B})
        assert resolver.resolve("  ").key == KEY_B

    def test_malformed_explicit_key_does_not_fall_through(self, tmp_path):
        """A malformed explicit key is INVALID even when other sources exist."""
        resolver = make_resolver(tmp_path, {ENV_VAR: KEY_B}, {"privateKey": KEY_C})
        resolution = resolver.resolve("0xdeadbeef")
        assert resolution.status is KeyStatus.INVALID
        assert resolution.source is KeySource.EXPLICIT
        assert resolution.key is None

    def test_malformed_environment_key_fails_closed(self, tmp_path):
        """A malformed environment key does not fall back to the wallet file."""
        resolver = make_resolver(tmp_path, {ENV_VAR: "not-a-key"}, {"privateKey": KEY_C})
        resolution = resolver.resolve()
        assert resolution.status is KeyStatus.INVALID
        assert resolution.source is KeySource.ENVIRONMENT

    def test_malformed_wallet_key_invalid(self, tmp_path):
        """A present but malformed privateKey in the wallet file is INVALID."""
        resolution = make_resolver(tmp_path, {}, {"privateKey": "0x1234"}).resolve()
        assert resolution.status is KeyStatus.INVALID
        assert resolution.source is KeySource.WALLET_FILE

    def test_unreadable_wallet_file_is_absent(self, tmp_path):
        """Malformed wallet JSON is non-fatal."""
        resolution = make_resolver(tmp_path, {}, "{broken").resolve()
        assert resolution.status is KeyStatus.ABSENT

    def test_wallet_file_never_written(self, tmp_path):
        """Resolution leaves the wallet file untouched."""
        wallet = json.dumps({"privateKey": KEY_C})
        resolver = make_resolver(tmp_path, {}, wallet)
        resolver.resolve()
        assert (tmp_path / "wallet.json").read_text() == wallet

    def test_repr_hides_key(self, tmp_path):
        """The key never appears in the resolution repr."""
        resolution = make_resolver(tmp_path).resolve(KEY_A)
        assert KEY_A not in repr(resolution)
