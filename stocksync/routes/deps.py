from typing import Generator

from fastapi import Depends, Request
from sqlmodel import Session

from stocksync.context import AppContext


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_session(ctx: AppContext = Depends(get_context)) -> Generator[Session, None, None]:
    with ctx.session_factory() as session:
        yield session


ContextDep = Depends(get_context)
SessionDep = Depends(get_session)
