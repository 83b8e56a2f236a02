from sqlalchemy import Column, String, Integer, DateTime, Boolean, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()

__all__ = ["Base", "Column", "String", "Integer", "DateTime", "Boolean", "Text", "UniqueConstraint"]
