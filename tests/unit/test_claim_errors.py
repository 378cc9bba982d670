"""Claim error taxonomy tests."""

import pytest

from uticoins.rewards.errors import ClaimError, ClaimErrorKind


class TestClaimError:
    @pytest.mark.parametrize(
        ("kind", "status"),
        [
            (ClaimErrorKind.NOT_CLAIMABLE, 409),
            (ClaimErrorKind.CODE_MISMATCH, 409),
            (ClaimErrorKind.UNAUTHENTICATED, 401),
            (ClaimErrorKind.NETWORK_TIMEOUT, 504),
            (ClaimErrorKind.SYSTEM_DISABLED, 503),
        ],
    )
    def test_http_status(self, kind, status):
        assert ClaimError(kind, "x").http_status == status

    def test_to_dict(self):
        err = ClaimError(ClaimErrorKind.CODE_MISMATCH, "Submitted code does not match")
        assert err.to_dict() == {"detail": "Submitted code does not match", "kind": "code_mismatch"}

    def test_unauthenticated_is_not_retried_via_resync(self):
        assert not ClaimError(ClaimErrorKind.UNAUTHENTICATED, "x").retry_requires_resync
        assert ClaimError(ClaimErrorKind.NETWORK_TIMEOUT, "x").retry_requires_resync

    def test_is_an_exception_with_message(self):
        with pytest.raises(ClaimError, match="window closed") as exc_info:
            raise ClaimError(ClaimErrorKind.NOT_CLAIMABLE, "window closed")
        assert exc_info.value.kind is ClaimErrorKind.NOT_CLAIMABLE
        assert "not_claimable" in repr(exc_info.value)
