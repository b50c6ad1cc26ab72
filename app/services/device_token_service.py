"""Device token registry"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List
import logging

from app.core.exceptions import ConflictError, NotFoundError
from app.models.notification import DeviceToken
from app.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class DeviceTokenService:
    """Service for registering push endpoints"""

    def __init__(self, db: Session):
        self.db = db

    def register_token(
        self,
        user_id: str,
        token: str,
        device_type: str,
        device_id: str
    ) -> DeviceToken:
        """
        Register or update a device token

        The token value is unique system wide. Registering a token owned by
        another user moves it to ``user_id``; a previously unregistered token
        is reactivated rather than inserted again.
        """
        device_token = self.db.query(DeviceToken).filter(DeviceToken.token == token).first()

        if device_token:
            if device_token.user_id != user_id:
                logger.info(f"Reassigning device token from user {device_token.user_id} to user {user_id}")
            device_token.user_id = user_id
            device_token.device_type = device_type
            device_token.device_id = device_id
            device_token.is_active = True
            device_token.last_used = utc_now()
        else:
            device_token = DeviceToken(
                user_id=user_id,
                token=token,
                device_type=device_type,
                device_id=device_id
            )
            self.db.add(device_token)

        try:
            self.db.commit()
        except IntegrityError:
            # Same token inserted concurrently by another request
            self.db.rollback()
            raise ConflictError("Device token already registered")
        self.db.refresh(device_token)

        logger.info(f"Registered device token for user {user_id}, device {device_id}")
        return device_token

    def unregister_token(self, user_id: str, token: str) -> DeviceToken:
        """
        Deactivate a device token owned by the user

        Raises:
            NotFoundError: Token not registered to this user
        """
        device_token = self.db.query(DeviceToken).filter(
            DeviceToken.token == token,
            DeviceToken.user_id == user_id
        ).first()

        if not device_token:
            raise NotFoundError("Device token not found")

        device_token.is_active = False
        self.db.commit()

        logger.info(f"Unregistered device token for user {user_id}, device {device_token.device_id}")
        return device_token

    def get_active_tokens(self, user_id: str) -> List[DeviceToken]:
        """Get all active device tokens for a user"""
        return self.db.query(DeviceToken).filter(
            DeviceToken.user_id == user_id,
            DeviceToken.is_active == True  # noqa: E712
        ).all()
