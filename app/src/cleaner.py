import datetime, logging
from sqlalchemy.orm import Session
from sqlalchemy import delete, update

from app.src.db import sessionMaker, User, UserToken

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Cleaner")


def removeExpiredTokens(session: Session) -> int:
    currentTime = datetime.datetime.now(datetime.timezone.utc)
    result = session.execute(
        delete(UserToken).where(UserToken.expires_at < currentTime)
    )
    session.commit()
    deletedCount = result.rowcount
    logger.info(f"Removed {deletedCount} tokens from {UserToken.__tablename__} table")
    return deletedCount


def clearExpiredRefreshTokens(session: Session) -> int:
    currentTime = datetime.datetime.now(datetime.timezone.utc)
    result = session.execute(
        update(User)
        .where(User.refresh_token_expires_at < currentTime)
        .values(refresh_token=None, refresh_token_expires_at=None)
    )
    session.commit()
    clearedCount = result.rowcount
    logger.info(f"Cleared {clearedCount} refresh tokens from {User.__tablename__} table")
    return clearedCount


def main():
    try:
        with sessionMaker() as session:
            removeExpiredTokens(session)
            clearExpiredRefreshTokens(session)
    except Exception:
        logger.exception("cleaner.py failed")


if __name__ == "__main__":
    main()
