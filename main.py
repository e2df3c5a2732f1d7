import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from errors import AppError, Unauthenticated, UpstreamFailure, ValidationError
from schemas import (
    AuthOut,
    BudgetIn,
    BudgetOut,
    BudgetSpendOut,
    BudgetUpdate,
    ExpenseIn,
    ExpenseOut,
    ForecastOut,
    ForgotPasswordIn,
    LoginIn,
    MessageOut,
    PaymentOut,
    RegisterIn,
    ResetPasswordIn,
    SubscriptionIn,
    SubscriptionOut,
    UserOut,
)
from services import (
    BudgetService,
    ExpenseService,
    ReportService,
    SubscriptionService,
    UserService,
)
from spreadsheet import XLSX_MEDIA_TYPE
from stock_quotes import StockQuoteService
from tokens import verify_access_token
from validation import join_messages

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

API = "/api/v1"

app = FastAPI(title="Finance Tracker API")

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.client_url, "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    body: dict[str, object] = {"message": exc.message}
    if isinstance(exc, UpstreamFailure) and exc.details is not None:
        body["details"] = exc.details
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(RequestValidationError)
def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        field = ".".join(loc)
        messages.append(f"{field}: {err.get('msg')}." if field else f"{err.get('msg')}.")
    return JSONResponse(status_code=400, content={"message": join_messages(messages)})


@app.exception_handler(Exception)
def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"unhandled_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Server error."})


def get_current_user_id(request: Request) -> int:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise Unauthenticated("Not authorized, no token")
    return verify_access_token(auth_header.split(" ", 1)[1].strip())


# --- Auth ---


@app.post(f"{API}/auth/register", response_model=AuthOut, status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    result = UserService(db).register(
        payload.full_name, payload.email, payload.password, payload.profile_image_url
    )
    return AuthOut.model_validate(result)


@app.post(f"{API}/auth/login", response_model=AuthOut)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    return AuthOut.model_validate(UserService(db).login(payload.email, payload.password))


@app.get(f"{API}/auth/me", response_model=UserOut)
@app.get(f"{API}/auth/getUser", response_model=UserOut)
def current_user(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    return UserService(db).get(user_id)


@app.post(f"{API}/auth/forgot-password", response_model=MessageOut)
def forgot_password(payload: ForgotPasswordIn, db: Session = Depends(get_db)):
    return MessageOut(message=UserService(db).request_password_reset(payload.email))


@app.post(f"{API}/auth/reset-password", response_model=MessageOut)
def reset_password(payload: ResetPasswordIn, db: Session = Depends(get_db)):
    UserService(db).reset_password(payload.token, payload.password)
    return MessageOut(message="Password has been reset")


# --- Budgets ---


@app.post(f"{API}/budgets", response_model=BudgetOut, status_code=201)
def create_budget(
    payload: BudgetIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return BudgetService(db, user_id).create(payload)


@app.get(f"{API}/budgets", response_model=list[BudgetOut])
def list_budgets(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    return BudgetService(db, user_id).list_all()


@app.get(f"{API}/budgets/category-spending-last-30-days")
def category_spending_last_30_days(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
) -> dict[str, float]:
    return ReportService(db, user_id).category_spending_last_30_days()


@app.get(f"{API}/budgets/{{budget_id}}", response_model=BudgetSpendOut)
def get_budget(
    budget_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return BudgetSpendOut.model_validate(
        BudgetService(db, user_id).get_with_spend(budget_id)
    )


@app.put(f"{API}/budgets/{{budget_id}}", response_model=BudgetOut)
def update_budget(
    budget_id: str,
    payload: BudgetUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return BudgetService(db, user_id).update(budget_id, payload)


@app.delete(f"{API}/budgets/{{budget_id}}", response_model=MessageOut)
def delete_budget(
    budget_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    BudgetService(db, user_id).delete(budget_id)
    return MessageOut(message="Budget deleted successfully.")


# --- Expenses ---


@app.post(f"{API}/expense/add", response_model=ExpenseOut, status_code=201)
def add_expense(
    payload: ExpenseIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ExpenseService(db, user_id).create(payload)


@app.get(f"{API}/expense/get", response_model=list[ExpenseOut])
def list_expenses(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    return ExpenseService(db, user_id).list_all()


@app.get(f"{API}/expense/downloadexcel")
def download_expenses(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    content = ExpenseService(db, user_id).export_xlsx()
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="expense_details.xlsx"'},
    )


@app.get(f"{API}/expense/forecast", response_model=ForecastOut)
def forecast_expenses(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    return ReportService(db, user_id).forecast_monthly_spending()


@app.delete(f"{API}/expense/{{expense_id}}", response_model=MessageOut)
def delete_expense(
    expense_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    ExpenseService(db, user_id).delete(expense_id)
    return MessageOut(message="Expense deleted successfully")


# --- Subscriptions ---


@app.post(f"{API}/subscriptions", response_model=SubscriptionOut, status_code=201)
def add_subscription(
    payload: SubscriptionIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return SubscriptionService(db, user_id).create(payload)


@app.get(f"{API}/subscriptions", response_model=list[SubscriptionOut])
def list_subscriptions(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    return SubscriptionService(db, user_id).list_all()


@app.delete(f"{API}/subscriptions/{{subscription_id}}", response_model=MessageOut)
def delete_subscription(
    subscription_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    deleted_id = SubscriptionService(db, user_id).delete(subscription_id)
    return MessageOut(message="Subscription deleted", id=deleted_id)


@app.post(f"{API}/subscriptions/{{subscription_id}}/pay", response_model=PaymentOut)
def pay_subscription(
    subscription_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return PaymentOut.model_validate(SubscriptionService(db, user_id).pay(subscription_id))


# --- Stocks ---


@app.get(f"{API}/stocks/quotes")
def stock_quotes(symbols: Optional[str] = None) -> dict[str, float]:
    if not symbols:
        raise ValidationError("symbols query parameter is required")
    return StockQuoteService().quotes(symbols.split(","))


@app.get(f"{API}/stocks/history/{{symbol}}")
def stock_history(symbol: str) -> list[dict[str, object]]:
    points = StockQuoteService().history(symbol)
    return [{"date": p.date, "price": p.price} for p in points]
