"""Service wiring for the HTTP layer.

Routes receive fully built services through FastAPI dependencies; tests swap
the Generator/Notifier via ``app.dependency_overrides``.
"""
from functools import lru_cache
from typing import Annotated, TypeAlias

from fastapi import Depends
from sqlalchemy.orm import Session

from followup.db.session import SessionLocal, get_db
from followup.services.account_store import AccountStore
from followup.services.generator import AnthropicGenerator, Generator
from followup.services.ledger import Ledger
from followup.services.notifier import EmailNotifier, Notifier
from followup.services.package_catalog import PackageCatalog
from followup.services.payment_reconciler import PaymentReconciler
from followup.services.submission_workflow import SubmissionWorkflow


@lru_cache
def get_generator() -> Generator:
    return AnthropicGenerator()


@lru_cache
def get_notifier() -> Notifier:
    return EmailNotifier()


@lru_cache
def get_catalog() -> PackageCatalog:
    return PackageCatalog()


def get_account_store() -> AccountStore:
    return AccountStore()


def get_ledger() -> Ledger:
    return Ledger()


DbDep: TypeAlias = Annotated[Session, Depends(get_db)]
AccountStoreDep: TypeAlias = Annotated[AccountStore, Depends(get_account_store)]
LedgerDep: TypeAlias = Annotated[Ledger, Depends(get_ledger)]
CatalogDep: TypeAlias = Annotated[PackageCatalog, Depends(get_catalog)]


def get_workflow(
    accounts: AccountStoreDep,
    ledger: LedgerDep,
    generator: Annotated[Generator, Depends(get_generator)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> SubmissionWorkflow:
    return SubmissionWorkflow(SessionLocal, accounts, ledger, generator, notifier)


def get_reconciler(
    accounts: AccountStoreDep,
    ledger: LedgerDep,
    catalog: CatalogDep,
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> PaymentReconciler:
    return PaymentReconciler(SessionLocal, accounts, ledger, catalog, notifier)


WorkflowDep: TypeAlias = Annotated[SubmissionWorkflow, Depends(get_workflow)]
ReconcilerDep: TypeAlias = Annotated[PaymentReconciler, Depends(get_reconciler)]
