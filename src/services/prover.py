from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from pathlib import Path
from time import perf_counter
from typing import Callable, Protocol

from pydantic import BaseModel

import guest
from config import AppSettings
from domain.ledger import TaxInput
from domain.public_values import PublicValues, PublicValuesError, decode
from guest.program import GuestError, run
from utils.formatting import format_hex

logger = logging.getLogger(__name__)

GUEST_DIR = Path(guest.__file__).resolve().parent


class ProverError(RuntimeError):
    pass


class ProofArtifacts(BaseModel):
    proof: str
    public_values: str
    vk_hash: str
    total_tax_paisa: int
    ledger_commitment: str
    user_type_code: int
    used_44ada: bool

    @classmethod
    def build(cls, *, proof: bytes, public_values: bytes, vk_hash: str) -> ProofArtifacts:
        decoded = decode(public_values)
        return cls(
            proof=base64.b64encode(proof).decode("ascii"),
            public_values=base64.b64encode(public_values).decode("ascii"),
            vk_hash=vk_hash,
            total_tax_paisa=decoded.total_tax_paisa,
            ledger_commitment=format_hex(decoded.ledger_commitment),
            user_type_code=decoded.user_type.code,
            used_44ada=decoded.used_44ada,
        )

    def proof_bytes(self) -> bytes:
        return base64.b64decode(self.proof, validate=True)

    def public_values_bytes(self) -> bytes:
        return base64.b64decode(self.public_values, validate=True)

    def decoded_public_values(self) -> PublicValues:
        return decode(self.public_values_bytes())


class ProvingBackend(Protocol):
    @property
    def vk_hash(self) -> str: ...

    def execute(self, tax_input: TaxInput) -> bytes: ...

    def prove(self, tax_input: TaxInput) -> ProofArtifacts: ...

    def verify(self, artifacts: ProofArtifacts) -> bool: ...


def guest_stdin(tax_input: TaxInput) -> bytes:
    return tax_input.model_dump_json().encode("utf-8")


def program_digest(program_dir: Path = GUEST_DIR) -> bytes:
    """Identify the guest program by the SHA-256 of its sources."""
    digest = hashlib.sha256()
    for source in sorted(program_dir.glob("*.py")):
        digest.update(source.name.encode("utf-8"))
        digest.update(source.read_bytes())
    return digest.digest()


class MockProver:
    """Execution-only backend: runs the guest in-process and binds the output to the program id.

    The "proof" is SHA-256(program id || public values). It shows that this
    program produced these public values but carries no zero-knowledge
    guarantee; a real proving system plugs in behind ``ProvingBackend``.
    """

    def __init__(self, program: Callable[[bytes], bytes] = run, program_id: bytes | None = None) -> None:
        self._program = program
        self._program_id = program_id if program_id is not None else program_digest()

    @property
    def vk_hash(self) -> str:
        return format_hex(self._program_id)

    def execute(self, tax_input: TaxInput) -> bytes:
        try:
            return self._program(guest_stdin(tax_input))
        except GuestError as exc:
            raise ProverError(f"Guest program failed: {exc}") from exc

    def prove(self, tax_input: TaxInput) -> ProofArtifacts:
        started = perf_counter()
        public_values = self.execute(tax_input)
        proof = self._bind(public_values)
        logger.info(
            "Generated mock proof rows=%d user_type=%s in %.3fs",
            len(tax_input.ledger),
            tax_input.user_type,
            perf_counter() - started,
        )
        try:
            return ProofArtifacts.build(proof=proof, public_values=public_values, vk_hash=self.vk_hash)
        except PublicValuesError as exc:
            raise ProverError(f"Guest produced invalid public values: {exc}") from exc

    def verify(self, artifacts: ProofArtifacts) -> bool:
        if artifacts.vk_hash.lower() != self.vk_hash:
            logger.info("Rejecting proof for foreign program vk_hash=%s", artifacts.vk_hash)
            return False
        try:
            public_values = artifacts.public_values_bytes()
            proof = artifacts.proof_bytes()
            decoded = decode(public_values)
        except ValueError:
            return False

        if not hmac.compare_digest(proof, self._bind(public_values)):
            return False
        return (
            decoded.total_tax_paisa == artifacts.total_tax_paisa
            and format_hex(decoded.ledger_commitment) == artifacts.ledger_commitment.lower()
            and decoded.user_type.code == artifacts.user_type_code
            and decoded.used_44ada == artifacts.used_44ada
        )

    def _bind(self, public_values: bytes) -> bytes:
        return hashlib.sha256(self._program_id + public_values).digest()


def build_prover(settings: AppSettings) -> ProvingBackend:
    if settings.prover_mode == "mock":
        return MockProver()
    raise ValueError(f"Unsupported prover mode: {settings.prover_mode!r}")


__all__ = ["MockProver", "ProofArtifacts", "ProverError", "ProvingBackend", "build_prover", "program_digest"]
