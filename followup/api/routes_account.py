from fastapi import APIRouter, HTTPException

from followup.api.dependencies import AccountStoreDep, CatalogDep, DbDep, LedgerDep
from followup.core.exceptions import ValidationError
from followup.models.schemas import BalanceOut, LedgerEntryOut, PackageOut

router = APIRouter()


def _account_or_404(db, accounts, email: str):
    try:
        account = accounts.get_by_email(db, email)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


@router.get("/accounts/{email}/balance", response_model=BalanceOut)
def get_balance(email: str, db: DbDep, accounts: AccountStoreDep):
    return _account_or_404(db, accounts, email)


@router.get("/accounts/{email}/ledger", response_model=list[LedgerEntryOut])
def get_ledger_history(email: str, db: DbDep, accounts: AccountStoreDep, ledger: LedgerDep):
    account = _account_or_404(db, accounts, email)
    return ledger.history(db, account.id)


@router.get("/packages", response_model=list[PackageOut])
def list_packages(catalog: CatalogDep):
    return [
        PackageOut(package_type=grant.package_type, price=price, credits=grant.credits)
        for price, grant in catalog.packages()
    ]
