"""
Data access dependency.
"""
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_api.database import get_db
from gallery_api.services.database import Database


async def get_database(session: AsyncSession = Depends(get_db)) -> AsyncGenerator[Database, None]:
    """
    Data access layer bound to the request session.
    The session commits when the request succeeds and rolls back otherwise.
    """
    yield Database(session)
