from typing import Annotated, Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from clients.alchemy import AlchemyService, build_alchemy_service
from clients.ens import EnsResolver
from config import AppSettings
from domain.categorization import ContractRegistry
from services.jobs import AttestationJobRunner


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_session(request: Request) -> Generator[Session, None, None]:
    with request.app.state.sessionmaker() as session:
        yield session


def get_job_runner(request: Request) -> AttestationJobRunner:
    return request.app.state.job_runner


def get_contract_registry(request: Request) -> ContractRegistry:
    return request.app.state.contracts


def get_ens_resolver(request: Request) -> EnsResolver:
    return request.app.state.ens_resolver


def get_alchemy_service(
    settings: Annotated[AppSettings, Depends(get_settings)],
    session: Annotated[Session, Depends(get_session)],
) -> AlchemyService:
    return build_alchemy_service(settings, session)
