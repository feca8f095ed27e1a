"""Core type definitions for the quorum-certificate verification engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Iterable, Iterator, TypeAlias

Bytes32: TypeAlias = bytes
PublicKey: TypeAlias = bytes
Signature: TypeAlias = bytes


class ProofKind(IntEnum):
    NATIVE = 1
    WRAPPED_SUCCINCT = 2


@dataclass(frozen=True, slots=True)
class ValidatorInfo:
    identity: bytes
    public_key: PublicKey
    voting_power: int


@dataclass(frozen=True, slots=True)
class ValidatorSet:
    """Ordered validator set, immutable once committed for an epoch."""

    validators: tuple[ValidatorInfo, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.validators)

    def __iter__(self) -> Iterator[ValidatorInfo]:
        return iter(self.validators)

    def __getitem__(self, index: int) -> ValidatorInfo:
        return self.validators[index]

    @property
    def total_power(self) -> int:
        return sum(v.voting_power for v in self.validators)

    @property
    def commitment(self) -> Bytes32:
        from quorumbridge.core.encoding import validator_set_commitment
        return validator_set_commitment(self)


@dataclass(frozen=True, slots=True)
class LedgerInfo:
    epoch: int
    height: int
    state_root: Bytes32
    consensus_digest: Bytes32
    next_validator_set: ValidatorSet | None = None

    @property
    def position(self) -> tuple[int, int]:
        return (self.epoch, self.height)

    @property
    def ends_epoch(self) -> bool:
        return self.next_validator_set is not None


@dataclass(frozen=True, slots=True)
class SignerMask:
    """Bitmap of signer indices into a validator set."""

    bits: int = 0

    @classmethod
    def from_indices(cls, indices: Iterable[int]) -> SignerMask:
        bits = 0
        for i in indices:
            if i < 0:
                raise ValueError(f"Negative signer index {i}")
            bits |= 1 << i
        return cls(bits)

    def indices(self) -> list[int]:
        out: list[int] = []
        bits, i = self.bits, 0
        while bits:
            if bits & 1:
                out.append(i)
            bits >>= 1
            i += 1
        return out

    def contains(self, index: int) -> bool:
        return bool((self.bits >> index) & 1)

    def flipped(self, index: int) -> SignerMask:
        return SignerMask(self.bits ^ (1 << index))

    @property
    def highest_index(self) -> int:
        return self.bits.bit_length() - 1

    @property
    def count(self) -> int:
        return bin(self.bits).count("1")

    def to_bytes(self, width: int) -> bytes:
        return self.bits.to_bytes((width + 7) // 8, "little")


@dataclass(frozen=True, slots=True)
class QuorumCertificate:
    ledger_info: LedgerInfo
    signer_mask: SignerMask
    aggregate_signature: Signature


@dataclass(frozen=True, slots=True)
class PublicInputs:
    old_state_root: Bytes32
    old_validator_set_commitment: Bytes32
    new_state_root: Bytes32
    new_validator_set_commitment: Bytes32
    proof_kind: ProofKind


@dataclass(frozen=True, slots=True)
class Statement:
    """Everything a batch proof claims, minus the proof itself."""

    start_epoch: int
    start_height: int
    start_epoch_complete: bool
    end_epoch: int
    end_height: int
    end_epoch_complete: bool
    public_inputs: PublicInputs

    @property
    def digest(self) -> Bytes32:
        from quorumbridge.core.encoding import statement_digest
        return statement_digest(self)

    @property
    def start(self) -> tuple[int, int]:
        return (self.start_epoch, self.start_height)

    @property
    def end(self) -> tuple[int, int]:
        return (self.end_epoch, self.end_height)

    @property
    def start_head(self) -> VerifiedHead:
        pi = self.public_inputs
        return VerifiedHead(
            epoch=self.start_epoch,
            height=self.start_height,
            state_root=pi.old_state_root,
            validator_set_commitment=pi.old_validator_set_commitment,
            epoch_complete=self.start_epoch_complete,
        )

    @property
    def end_head(self) -> VerifiedHead:
        pi = self.public_inputs
        return VerifiedHead(
            epoch=self.end_epoch,
            height=self.end_height,
            state_root=pi.new_state_root,
            validator_set_commitment=pi.new_validator_set_commitment,
            epoch_complete=self.end_epoch_complete,
        )


@dataclass(frozen=True, slots=True)
class BatchProof:
    """One verifiable unit covering a contiguous range of certified updates."""

    start_epoch: int
    start_height: int
    end_epoch: int
    end_height: int
    public_inputs: PublicInputs
    proof_bytes: bytes
    proof_kind: ProofKind
    start_epoch_complete: bool = False
    end_epoch_complete: bool = False

    @classmethod
    def from_statement(cls, statement: Statement, proof_bytes: bytes) -> BatchProof:
        return cls(
            start_epoch=statement.start_epoch,
            start_height=statement.start_height,
            end_epoch=statement.end_epoch,
            end_height=statement.end_height,
            public_inputs=statement.public_inputs,
            proof_bytes=proof_bytes,
            proof_kind=statement.public_inputs.proof_kind,
            start_epoch_complete=statement.start_epoch_complete,
            end_epoch_complete=statement.end_epoch_complete,
        )

    @property
    def statement(self) -> Statement:
        return Statement(
            start_epoch=self.start_epoch,
            start_height=self.start_height,
            start_epoch_complete=self.start_epoch_complete,
            end_epoch=self.end_epoch,
            end_height=self.end_height,
            end_epoch_complete=self.end_epoch_complete,
            public_inputs=self.public_inputs,
        )

    @property
    def size(self) -> int:
        return len(self.proof_bytes)


@dataclass(frozen=True, slots=True)
class VerifiedHead:
    """Latest verified source-chain state held by the light client."""

    epoch: int
    height: int
    state_root: Bytes32
    validator_set_commitment: Bytes32
    epoch_complete: bool = False

    @classmethod
    def from_genesis(cls, ledger_info: LedgerInfo, validator_set: ValidatorSet) -> VerifiedHead:
        if ledger_info.next_validator_set is not None:
            return cls(
                epoch=ledger_info.epoch,
                height=ledger_info.height,
                state_root=ledger_info.state_root,
                validator_set_commitment=ledger_info.next_validator_set.commitment,
                epoch_complete=True,
            )
        return cls(
            epoch=ledger_info.epoch,
            height=ledger_info.height,
            state_root=ledger_info.state_root,
            validator_set_commitment=validator_set.commitment,
        )

    @property
    def position(self) -> tuple[int, int]:
        return (self.epoch, self.height)


class VerificationStatus(Enum):
    VALID = "valid"
    STALE = "stale"
    INVALID_PROOF = "invalid_proof"
    INVALID_STATEMENT = "invalid_statement"
    SETUP_MISSING = "setup_missing"


@dataclass(frozen=True, slots=True)
class VerificationReport:
    """Outcome of checking a batch proof without touching the head."""

    status: VerificationStatus
    method: ProofKind
    message: str
    elapsed_us: int = 0
    proof_size: int = 0

    @property
    def valid(self) -> bool:
        return self.status is VerificationStatus.VALID
