"""Database models, enums and Pydantic schemas."""
