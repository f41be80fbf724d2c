import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field
from sqlmodel import Session, select
from ..config import settings
from ..db import atomic, get_session
from ..errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from ..logging import get_logger
from ..models import PasswordResetToken, User as UserModel, VerificationToken, utcnow
from ..services.email import EmailSender, get_email_sender

SECRET_KEY = settings.secret_key
ALGORITHM = settings.algorithm
ACCESS_TOKEN_EXPIRE_MINUTES = settings.access_token_expire_minutes
MIN_PASSWORD_LENGTH = 8

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

logger = get_logger(__name__)

router = APIRouter()


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    email_verified: Optional[datetime] = None


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    name: Optional[str] = None


class RegisterResponse(BaseModel):
    id: int
    email: str
    message: str


class TokenRequest(BaseModel):
    token: str


class EmailRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)


class ProfileUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class MessageResponse(BaseModel):
    message: str


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def generate_token() -> str:
    return secrets.token_hex(32)


def _expired(expires: datetime) -> bool:
    # SQLite drops tzinfo on the way back; stored values are UTC
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires < datetime.now(timezone.utc)


def _to_out(user: UserModel) -> UserOut:
    assert user.id is not None
    return UserOut(id=user.id, email=user.email, name=user.name, email_verified=user.email_verified)


def get_user_by_email(session: Session, email: str) -> Optional[UserModel]:
    return session.exec(select(UserModel).where(UserModel.email == email.lower())).first()


def authenticate_user(session: Session, email: str, password: str) -> Optional[UserModel]:
    user = get_user_by_email(session, email)
    if not user:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode: Dict[str, Any] = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


async def get_current_user(token: str = Depends(oauth2_scheme), session: Session = Depends(get_session)) -> UserModel:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        email_val = payload.get("sub")
        if not isinstance(email_val, str):
            raise UnauthorizedError()
        email: str = email_val
    except JWTError:
        raise UnauthorizedError()
    user = get_user_by_email(session, email)
    if user is None:
        raise UnauthorizedError()
    return user


def _issue_verification_token(session: Session, email: str) -> str:
    token = generate_token()
    for old in session.exec(select(VerificationToken).where(VerificationToken.identifier == email)).all():
        session.delete(old)
    session.add(
        VerificationToken(
            identifier=email,
            token=token,
            expires=utcnow() + timedelta(hours=settings.verification_token_ttl_hours),
        )
    )
    return token


@router.post("/register", response_model=RegisterResponse)
async def register(
    req: RegisterRequest,
    session: Session = Depends(get_session),
    mailer: EmailSender = Depends(get_email_sender),
) -> RegisterResponse:
    email = req.email.lower()
    if get_user_by_email(session, email):
        raise ConflictError("User already exists")
    user = UserModel(email=email, name=req.name, hashed_password=pwd_context.hash(req.password))
    with atomic(session, "register", "User already exists"):
        session.add(user)
        token = _issue_verification_token(session, email)
    session.refresh(user)
    assert user.id is not None
    logger.info("user_registered", user_id=user.id)
    await mailer.send_verification_email(email, token)
    return RegisterResponse(
        id=user.id,
        email=user.email,
        message="Account created! Please check your email to verify your account.",
    )


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(req: TokenRequest, session: Session = Depends(get_session)) -> MessageResponse:
    record = session.exec(select(VerificationToken).where(VerificationToken.token == req.token)).first()
    if record is None or _expired(record.expires):
        raise ValidationError("Invalid or expired token")
    user = get_user_by_email(session, record.identifier)
    if user is None:
        raise NotFoundError("User not found")
    with atomic(session, "verify_email"):
        user.email_verified = utcnow()
        session.add(user)
        session.delete(record)
    return MessageResponse(message="Email verified successfully!")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    req: EmailRequest,
    session: Session = Depends(get_session),
    mailer: EmailSender = Depends(get_email_sender),
) -> MessageResponse:
    user = get_user_by_email(session, req.email)
    if user is None:
        raise NotFoundError("User not found")
    if user.email_verified is not None:
        raise ValidationError("Email already verified")
    with atomic(session, "resend_verification"):
        token = _issue_verification_token(session, user.email)
    await mailer.send_verification_email(user.email, token)
    return MessageResponse(message="Verification email sent!")


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), session: Session = Depends(get_session)):
    user = authenticate_user(session, form_data.username, form_data.password)
    if not user:
        raise UnauthorizedError("Incorrect email or password")
    if settings.require_email_verification and user.email_verified is None:
        raise UnauthorizedError("Please verify your email before signing in")
    access_token_expires = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(data={"sub": user.email}, expires_delta=access_token_expires)
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    req: EmailRequest,
    session: Session = Depends(get_session),
    mailer: EmailSender = Depends(get_email_sender),
) -> MessageResponse:
    user = get_user_by_email(session, req.email)
    if user is None:
        raise NotFoundError("User not found")
    token = generate_token()
    with atomic(session, "forgot_password"):
        # Only the newest reset link stays valid
        for old in session.exec(select(PasswordResetToken).where(PasswordResetToken.email == user.email)).all():
            session.delete(old)
        session.add(
            PasswordResetToken(
                email=user.email,
                token=token,
                expires=utcnow() + timedelta(minutes=settings.reset_token_ttl_minutes),
            )
        )
    await mailer.send_password_reset_email(user.email, token)
    return MessageResponse(message="Password reset email sent!")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(req: ResetPasswordRequest, session: Session = Depends(get_session)) -> MessageResponse:
    record = session.exec(select(PasswordResetToken).where(PasswordResetToken.token == req.token)).first()
    if record is None or _expired(record.expires):
        raise ValidationError("Invalid or expired token")
    user = get_user_by_email(session, record.email)
    if user is None:
        raise NotFoundError("User not found")
    with atomic(session, "reset_password"):
        user.hashed_password = pwd_context.hash(req.password)
        session.add(user)
        session.delete(record)
    logger.info("password_reset", user_id=user.id)
    return MessageResponse(message="Password reset successfully!")


@router.get("/me", response_model=UserOut)
async def me(current_user: UserModel = Depends(get_current_user)):
    return _to_out(current_user)


@router.put("/me", response_model=UserOut)
async def update_profile(
    req: ProfileUpdate,
    current_user: UserModel = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    with atomic(session, "update_profile"):
        current_user.name = req.name
        session.add(current_user)
    session.refresh(current_user)
    return _to_out(current_user)
