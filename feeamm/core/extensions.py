"""
Asset admission policy.

`admit(descriptor)` decides, before a pool may reference an asset, whether the
asset's extensions are compatible with pool solvency. Assets that can be frozen,
redirected, hooked into arbitrary code, or closed out from under the vault are
rejected.

Every `Extension` member has an explicit verdict in `_POLICY`; the module refuses
to import if one is missing, so a new extension cannot be silently allowed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from ..state.assets import AssetDescriptor, Extension


class Verdict(Enum):
    ADMIT = "admit"
    REJECT = "reject"


@dataclass(frozen=True)
class Admitted:
    asset: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    asset: str
    reason: str
    extension: Optional[Extension] = None

    @property
    def ok(self) -> bool:
        return False


Admission = Union[Admitted, Rejected]


_POLICY: dict[Extension, tuple[Verdict, str]] = {
    # supported
    Extension.TRANSFER_FEE_CONFIG: (Verdict.ADMIT, "reconciled from observed balance deltas"),
    Extension.INTEREST_BEARING_CONFIG: (Verdict.ADMIT, "display-only accrual"),
    Extension.TOKEN_METADATA: (Verdict.ADMIT, "metadata only"),
    Extension.METADATA_POINTER: (Verdict.ADMIT, "metadata only"),
    Extension.GROUP_POINTER: (Verdict.ADMIT, "grouping only"),
    Extension.TOKEN_GROUP: (Verdict.ADMIT, "grouping only"),
    Extension.GROUP_MEMBER_POINTER: (Verdict.ADMIT, "grouping only"),
    Extension.TOKEN_GROUP_MEMBER: (Verdict.ADMIT, "grouping only"),
    Extension.IMMUTABLE_OWNER: (Verdict.ADMIT, "account-level restriction"),
    Extension.CPI_GUARD: (Verdict.ADMIT, "account-level restriction"),
    # partially supported: non-confidential transfers only
    Extension.CONFIDENTIAL_TRANSFER_MINT: (Verdict.ADMIT, "non-confidential transfers only"),
    Extension.CONFIDENTIAL_TRANSFER_FEE_CONFIG: (Verdict.ADMIT, "non-confidential transfers only"),
    # not allowed
    Extension.NON_TRANSFERABLE: (Verdict.REJECT, "asset cannot leave the vault"),
    Extension.TRANSFER_HOOK: (Verdict.REJECT, "transfers run arbitrary hook code"),
    Extension.PERMANENT_DELEGATE: (Verdict.REJECT, "delegate can move vault funds"),
    Extension.MINT_CLOSE_AUTHORITY: (Verdict.REJECT, "asset can be closed unilaterally"),
    Extension.DEFAULT_ACCOUNT_STATE: (Verdict.REJECT, "new accounts may start frozen"),
    Extension.PAUSABLE: (Verdict.REJECT, "transfers can be paused"),
}

_missing = set(Extension) - set(_POLICY)
if _missing:
    raise RuntimeError(f"extension policy missing verdicts for: {sorted(e.value for e in _missing)}")
del _missing


def verdict_for(extension: Extension) -> Verdict:
    return _POLICY[extension][0]


def admit(descriptor: AssetDescriptor) -> Admission:
    """
    Decide whether `descriptor` may back one side of a pool.

    Pure and deterministic: extensions are checked in their declaration order so
    the first offending extension is always the one reported.
    """
    if descriptor.is_native:
        return Rejected(asset=descriptor.identity, reason="native asset is not allowed")
    if descriptor.freeze_authority is not None:
        return Rejected(asset=descriptor.identity, reason="asset has a freeze authority")

    for ext in Extension:
        if ext not in descriptor.extensions:
            continue
        verdict, why = _POLICY[ext]
        if verdict is Verdict.REJECT:
            return Rejected(
                asset=descriptor.identity,
                reason=f"extension {ext.value} not allowed: {why}",
                extension=ext,
            )
    return Admitted(asset=descriptor.identity)
