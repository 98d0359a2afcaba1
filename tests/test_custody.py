"""Tests for share files and scoped key reconstruction."""

import os
import stat
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from shardca import certs, custody
from shardca.config import Subject
from shardca.errors import (
    DestinationExists,
    InvalidParameters,
    MalformedShare,
    ParentKeyReconstructionFailed,
    PersistenceError,
    ShareWriteIncomplete,
)
from shardca.keyusage import KeyUsage


def _self_signed():
    key = certs.generate_private_key()
    name = certs.build_name(Subject(common_name="Custody Test CA"))
    cert = certs.build_certificate(name, key.public_key(), key, days=1, is_ca=True, usage=KeyUsage.NONE)
    return key, cert


def _paths(tmpdir, prefix, count):
    return [str(Path(tmpdir) / f"{prefix}-{i}.share") for i in range(1, count + 1)]


def test_split_and_write_then_read():
    with tempfile.TemporaryDirectory() as tmpdir:
        secret = os.urandom(40)
        paths = _paths(tmpdir, "s", 4)

        written = custody.split_and_write(secret, 4, 3, paths)
        assert written == paths
        for p in paths:
            assert stat.S_IMODE(os.stat(p).st_mode) == 0o600
            text = Path(p).read_text()
            assert "\n" not in text and "-----" not in text

        shares = custody.read_shares(paths[1:])
        assert [s.identity for s in shares] == [2, 3, 4]


def test_write_refuses_existing_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        target = Path(tmpdir) / "taken.pem"
        target.write_text("someone else's")
        try:
            custody.write_exclusive(target, b"new", 0o644)
            assert False, "existing file should not be overwritten"
        except DestinationExists:
            pass
        assert target.read_text() == "someone else's"


def test_ensure_destinations_free():
    with tempfile.TemporaryDirectory() as tmpdir:
        a = str(Path(tmpdir) / "a")
        b = str(Path(tmpdir) / "b")
        custody.ensure_destinations_free([a, b])

        try:
            custody.ensure_destinations_free([a, b, a])
            assert False, "duplicate destination should raise"
        except InvalidParameters:
            pass

        Path(b).write_text("x")
        try:
            custody.ensure_destinations_free([a, b])
            assert False, "existing destination should raise"
        except DestinationExists as e:
            assert b in str(e)


def test_partial_share_write_is_reported():
    """If share 3 of 4 cannot be written, report exactly what is on disk."""
    with tempfile.TemporaryDirectory() as tmpdir:
        paths = _paths(tmpdir, "p", 4)
        Path(paths[2]).write_text("in the way")

        try:
            custody.split_and_write(os.urandom(16), 4, 2, paths, certificate="ca.pem")
            assert False, "blocked share path should raise"
        except ShareWriteIncomplete as e:
            assert e.written == paths[:2]
            assert e.pending == paths[2:]
            assert e.certificate == "ca.pem"
            assert paths[0] in str(e) and paths[3] in str(e)
            assert isinstance(e, OSError)

        assert os.path.exists(paths[0]) and os.path.exists(paths[1])
        assert not os.path.exists(paths[3])


def test_split_and_write_checks_path_count():
    try:
        custody.split_and_write(b"secret", 3, 2, ["only-one"])
        assert False, "wrong path count should raise"
    except InvalidParameters:
        pass


def test_split_and_write_checks_quorum_before_writing():
    with tempfile.TemporaryDirectory() as tmpdir:
        paths = _paths(tmpdir, "q", 3)
        with patch.object(custody.shamir, "verify_shares", return_value=False):
            try:
                custody.split_and_write(os.urandom(16), 3, 2, paths)
                assert False, "shares that do not rebuild the secret should raise"
            except PersistenceError as e:
                assert not isinstance(e, ShareWriteIncomplete)
        assert list(Path(tmpdir).iterdir()) == []


def test_read_shares_errors():
    with tempfile.TemporaryDirectory() as tmpdir:
        missing = str(Path(tmpdir) / "missing.share")
        try:
            custody.read_shares([missing])
            assert False, "missing share file should raise"
        except PersistenceError as e:
            assert missing in str(e)

        garbage = Path(tmpdir) / "garbage.share"
        garbage.write_text("%%% not a share %%%")
        try:
            custody.read_shares([str(garbage)])
            assert False, "garbage share should raise"
        except MalformedShare as e:
            assert str(garbage) in str(e)

        try:
            custody.read_shares([])
            assert False, "no shares should raise"
        except InvalidParameters:
            pass


def test_reconstructed_key_matches_parent():
    with tempfile.TemporaryDirectory() as tmpdir:
        key, cert = _self_signed()
        paths = _paths(tmpdir, "k", 3)
        custody.split_and_write(certs.private_key_to_der(key), 3, 2, paths)

        with custody.reconstructed_key(paths[:2], cert) as rebuilt:
            assert certs.public_keys_match(rebuilt.public_key(), cert.public_key())


def test_reconstructed_key_buffer_wiped_on_every_exit():
    """The combined bytes are zeroed after success and after errors."""
    with tempfile.TemporaryDirectory() as tmpdir:
        key, cert = _self_signed()
        paths = _paths(tmpdir, "w", 3)
        custody.split_and_write(certs.private_key_to_der(key), 3, 2, paths)

        buffers = []
        real = custody.shamir.combine_into_buffer

        def spy(shares):
            buf = real(shares)
            buffers.append(buf)
            return buf

        with patch.object(custody.shamir, "combine_into_buffer", side_effect=spy):
            with custody.reconstructed_key(paths[:2], cert):
                assert any(buffers[0])
            assert not any(buffers[0])

            try:
                with custody.reconstructed_key(paths[:2], cert):
                    raise RuntimeError("signing blew up")
            except RuntimeError:
                pass
            assert not any(buffers[1])

            # Too few shares: parse fails, buffer still wiped
            try:
                with custody.reconstructed_key(paths[:1], cert):
                    assert False, "one share of a 2-of-3 split should not rebuild the key"
            except ParentKeyReconstructionFailed:
                pass
            assert not any(buffers[2])


def test_reconstructed_key_rejects_other_key():
    """Shares of a valid key that is not the parent's are refused."""
    with tempfile.TemporaryDirectory() as tmpdir:
        _, cert = _self_signed()
        other_key, _ = _self_signed()
        paths = _paths(tmpdir, "o", 2)
        custody.split_and_write(certs.private_key_to_der(other_key), 2, 2, paths)

        try:
            with custody.reconstructed_key(paths, cert):
                assert False, "mismatched key should not be yielded"
        except ParentKeyReconstructionFailed as e:
            assert "does not match" in str(e)
