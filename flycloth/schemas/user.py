from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from flycloth.models.user import UserRoleEnum


class UserBase(BaseModel):
    email: EmailStr
    full_name: Optional[str] = Field(None, max_length=100)


class UserCreate(UserBase):
    """注册请求"""
    password: str = Field(..., min_length=8, max_length=128)


class UserUpdate(BaseModel):
    """个人资料更新"""
    full_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=1000)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        if v and not v.replace("+", "").replace("-", "").replace(" ", "").isdigit():
            raise ValueError('无效的电话号码格式')
        return v


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class User(UserBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    phone: Optional[str] = None
    address: Optional[str] = None
    role: UserRoleEnum
    display_name: str
    created_at: datetime


class CustomerSummary(User):
    """后台顾客列表"""
    order_count: int = 0


class RoleUpdate(BaseModel):
    role: UserRoleEnum
