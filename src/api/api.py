from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Annotated, AsyncGenerator, Awaitable, Callable

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from api.dependencies import (
    get_alchemy_service,
    get_contract_registry,
    get_ens_resolver,
    get_job_runner,
    get_settings,
)
from clients.alchemy import AlchemyAPIError, AlchemyService
from clients.ens import EnsResolver, EnsSubgraphError, ResolvedName, owned_addresses
from config import APP_VERSION, AppSettings, config
from db.transfers_cache import transfers_cache_sessionmaker
from domain.categorization import ContractRegistry, categorize_ledger, summarize_categories
from domain.ledger import Category, LedgerRow, TaxBreakdown, TaxInput
from domain.public_values import PublicValues
from domain.tax import compute_tax
from services.jobs import AttestationJobRunner, JobNotFoundError, JobStatus, JobStore
from services.prover import ProofArtifacts, ProverError, build_prover
from utils.formatting import format_hex

logger = logging.getLogger(__name__)


def build_contract_registry(settings: AppSettings) -> ContractRegistry:
    return ContractRegistry.from_addresses(
        gains=[settings.profit_machine_address],
        losses=[settings.loss_machine_address],
        yields=[settings.yield_farm_address],
    )


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
    settings = config()
    fastapi_app.state.settings = settings
    fastapi_app.state.sessionmaker = transfers_cache_sessionmaker(db_file=settings.transfers_cache_db)
    fastapi_app.state.contracts = build_contract_registry(settings)
    fastapi_app.state.ens_resolver = EnsResolver(subgraph_url=settings.ens_subgraph_url)
    store = JobStore(pending_timeout_seconds=settings.pending_job_timeout_seconds)
    runner = AttestationJobRunner(build_prover(settings), store, max_workers=settings.prover_workers)
    fastapi_app.state.job_runner = runner
    logger.info("API ready prover_mode=%s vk_hash=%s", settings.prover_mode, runner.prover.vk_hash)
    yield
    runner.shutdown(wait=False)
    fastapi_app.state.sessionmaker.kw["bind"].dispose()


app = FastAPI(title="financoor", version=APP_VERSION, lifespan=lifespan)


@app.middleware("http")
async def log_process_time(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    start_time = perf_counter()
    response = await call_next(request)
    process_time = perf_counter() - start_time
    logger.info("Request time: %s %s: %.4fs", request.method, request.url, process_time)
    return response


class HealthResponse(BaseModel):
    status: str
    version: str


class TransfersRequest(BaseModel):
    wallets: list[str]
    refresh: bool = False


class WalletCount(BaseModel):
    wallet: str
    count: int


class TransfersResponse(BaseModel):
    ledger: list[LedgerRow]
    wallet_counts: list[WalletCount]


class CategorizeRequest(BaseModel):
    wallets: list[str] = Field(default_factory=list)
    # Every address a name or its subdomains resolve to is treated as owned.
    ens_names: list[str] = Field(default_factory=list)
    ledger: list[LedgerRow]


class CategorySummaryResponse(BaseModel):
    counts: dict[Category, int]
    needs_review: int


class CategorizeResponse(BaseModel):
    ledger: list[LedgerRow]
    summary: CategorySummaryResponse


class TaxResponse(BaseModel):
    breakdown: TaxBreakdown


class ProveResponse(ProofArtifacts):
    breakdown: TaxBreakdown
    note: str


class JobSubmitResponse(BaseModel):
    job_id: str
    status: JobStatus


class JobStatusResponse(BaseModel):
    job_id: str
    status: JobStatus
    result: ProofArtifacts | None = None
    error: str | None = None


class VerifyResponse(BaseModel):
    valid: bool
    ledger_commitment: str | None = None
    total_tax_paisa: int | None = None
    user_type_code: int | None = None
    used_44ada: bool | None = None


class ResolvedNameResponse(BaseModel):
    name: str
    label: str
    address: str | None


@app.get("/health")
def health() -> HealthResponse:
    return HealthResponse(status="ok", version=APP_VERSION)


@app.post("/transfers")
def get_transfers(
    payload: TransfersRequest,
    service: Annotated[AlchemyService, Depends(get_alchemy_service)],
) -> TransfersResponse:
    if not payload.wallets:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No wallets provided")

    ledger: list[LedgerRow] = []
    wallet_counts: list[WalletCount] = []
    for wallet in payload.wallets:
        try:
            rows = service.get_ledger(wallet, refresh=payload.refresh)
        except AlchemyAPIError as exc:
            logger.error("Failed to fetch transfers for %s: %s", wallet, exc)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Failed to fetch transfers for {wallet}: {exc}",
            ) from exc
        wallet_counts.append(WalletCount(wallet=wallet, count=len(rows)))
        ledger.extend(rows)

    ledger.sort(key=lambda row: row.block_time)
    return TransfersResponse(ledger=ledger, wallet_counts=wallet_counts)


@app.post("/categorize")
def categorize(
    payload: CategorizeRequest,
    contracts: Annotated[ContractRegistry, Depends(get_contract_registry)],
    resolver: Annotated[EnsResolver, Depends(get_ens_resolver)],
    settings: Annotated[AppSettings, Depends(get_settings)],
) -> CategorizeResponse:
    owned = list(payload.wallets)
    for name in payload.ens_names:
        try:
            owned.extend(owned_addresses(resolver.resolve_subdomains(name)))
        except EnsSubgraphError as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    ledger = categorize_ledger(payload.ledger, owned, contracts, settings.native_asset)
    summary = summarize_categories(ledger)
    return CategorizeResponse(
        ledger=ledger,
        summary=CategorySummaryResponse(counts=summary.counts, needs_review=summary.needs_review),
    )


@app.post("/tax")
def calculate_tax(tax_input: TaxInput) -> TaxResponse:
    return TaxResponse(breakdown=compute_tax(tax_input))


@app.post("/prove")
def prove(
    tax_input: TaxInput,
    runner: Annotated[AttestationJobRunner, Depends(get_job_runner)],
) -> ProveResponse:
    breakdown = compute_tax(tax_input)
    try:
        artifacts = runner.prove_now(tax_input)
    except ProverError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    if artifacts.total_tax_paisa != breakdown.total_tax_paisa:
        logger.error(
            "Host and guest disagree on total tax host=%d guest=%d",
            breakdown.total_tax_paisa,
            artifacts.total_tax_paisa,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Proved tax total does not match the computed breakdown",
        )
    return ProveResponse(
        **artifacts.model_dump(),
        breakdown=breakdown,
        note=f"Generated by the {type(runner.prover).__name__} backend",
    )


@app.post("/prove/jobs", status_code=status.HTTP_202_ACCEPTED)
def submit_proof_job(
    tax_input: TaxInput,
    runner: Annotated[AttestationJobRunner, Depends(get_job_runner)],
) -> JobSubmitResponse:
    try:
        job_id = runner.submit(tax_input)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return JobSubmitResponse(job_id=job_id, status=JobStatus.PENDING)


@app.get("/prove/jobs/{job_id}")
def get_proof_job(
    job_id: str,
    runner: Annotated[AttestationJobRunner, Depends(get_job_runner)],
) -> JobStatusResponse:
    try:
        job = runner.status(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return JobStatusResponse(job_id=job.id, status=job.status, result=job.result, error=job.error)


@app.post("/verify")
def verify(
    artifacts: ProofArtifacts,
    runner: Annotated[AttestationJobRunner, Depends(get_job_runner)],
) -> VerifyResponse:
    if not runner.prover.verify(artifacts):
        return VerifyResponse(valid=False)
    decoded: PublicValues = artifacts.decoded_public_values()
    return VerifyResponse(
        valid=True,
        ledger_commitment=format_hex(decoded.ledger_commitment),
        total_tax_paisa=decoded.total_tax_paisa,
        user_type_code=decoded.user_type.code,
        used_44ada=decoded.used_44ada,
    )


@app.get("/ens/{name}")
def resolve_ens(
    name: str,
    resolver: Annotated[EnsResolver, Depends(get_ens_resolver)],
) -> list[ResolvedNameResponse]:
    try:
        resolved: list[ResolvedName] = resolver.resolve_subdomains(name)
    except EnsSubgraphError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return [ResolvedNameResponse(name=item.name, label=item.label, address=item.address) for item in resolved]
