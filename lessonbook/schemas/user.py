# -*- coding: utf-8 -*-
"""
Pydantic schemas for people as they appear inside lessons and invoices.
"""

from pydantic import BaseModel


class UserSummary(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str

    class Config:
        from_attributes = True
