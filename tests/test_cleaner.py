from datetime import datetime, timedelta, timezone

from app.src import cleaner
from app.src.db import sessionMaker, UserToken, User


def test_expired_tokens_are_removed(clientHeader, accounts):
    expired = datetime.now(timezone.utc) - timedelta(days=1)
    with sessionMaker() as session:
        session.add(
            UserToken(user_id=accounts["client"], expires_in=60, expires_at=expired)
        )
        session.commit()

        assert cleaner.removeExpiredTokens(session) == 1
        assert session.query(UserToken).count() == 1


def test_expired_refresh_tokens_are_cleared(clientHeader, providerHeader, accounts):
    expired = datetime.now(timezone.utc) - timedelta(days=1)
    with sessionMaker() as session:
        session.query(User).filter(User.id == accounts["client"]).update(
            {User.refresh_token_expires_at: expired}
        )
        session.commit()

        assert cleaner.clearExpiredRefreshTokens(session) == 1
        client = session.query(User).filter(User.id == accounts["client"]).first()
        provider = session.query(User).filter(User.id == accounts["provider"]).first()
        assert client.refresh_token is None
        assert provider.refresh_token is not None
