"""Lookup of the destination profile owner's preferred timezone."""
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processor.timezone_resolver import DEFAULT_TIMEZONE, get_zone

logger = logging.getLogger(__name__)


class OwnerTimezoneLookup:
    """Resolves profile -> owning user -> stored timezone preference.

    Lookup never raises: any missing record, read error or unknown zone
    name yields UTC.
    """

    def __init__(self, profiles_table: str, user_settings_table: str, dynamodb=None):
        self.dynamodb = dynamodb or boto3.resource('dynamodb')
        self.profiles = self.dynamodb.Table(profiles_table)
        self.user_settings = self.dynamodb.Table(user_settings_table)

    def get_timezone(self, profile_id: Optional[str]) -> str:
        """
        Return the owner's timezone name for a profile, or UTC.

        Args:
            profile_id: Destination profile id

        Returns:
            IANA timezone name
        """
        if not profile_id:
            return DEFAULT_TIMEZONE

        try:
            profile = self.profiles.get_item(Key={'id': profile_id}).get('Item')
            user_id = profile.get('user_id') if profile else None
            if not user_id:
                logger.info(f"No user found for profile {profile_id}, using {DEFAULT_TIMEZONE}")
                return DEFAULT_TIMEZONE

            settings = self.user_settings.get_item(Key={'user_id': user_id}).get('Item')
            tz_name = settings.get('timezone') if settings else None
        except (BotoCoreError, ClientError) as e:
            logger.warning(
                f"Error looking up timezone for profile {profile_id}, "
                f"using {DEFAULT_TIMEZONE}: {e}"
            )
            return DEFAULT_TIMEZONE

        if not tz_name or get_zone(tz_name) is None:
            logger.info(
                f"No valid timezone for user {user_id} ({tz_name!r}), using {DEFAULT_TIMEZONE}"
            )
            return DEFAULT_TIMEZONE

        logger.info(f"Using timezone {tz_name} for profile {profile_id}")
        return tz_name
