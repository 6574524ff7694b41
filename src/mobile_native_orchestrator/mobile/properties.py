"""User-supplied properties of a mobile app project."""

from __future__ import annotations

from dataclasses import dataclass

IOS = "iOS"
ANDROID = "Android"

# Minimum OS/API level passed to the platform setup check.
PLATFORM_API_LEVELS = {IOS: "17.0", ANDROID: "35"}
ANDROID_MIN_SDK = int(PLATFORM_API_LEVELS[ANDROID])


@dataclass(frozen=True, slots=True)
class PropertyMetadata:
    name: str
    friendly_name: str
    description: str


_CONNECTED_APP_HELP = (
    "See https://help.salesforce.com/s/articleView?id=xcloud.connected_app_create_mobile.htm"
    "&type=5 for information on how to create a Connected App for mobile apps."
)

USER_INPUT_PROPERTIES: tuple[PropertyMetadata, ...] = (
    PropertyMetadata(
        "platform",
        "mobile platform",
        "Target mobile platform for the mobile app (iOS or Android)",
    ),
    PropertyMetadata("projectName", "project name", "The name of the mobile app project"),
    PropertyMetadata(
        "packageName",
        "package identifier",
        "The package identifier of the mobile app, for example com.company.appname",
    ),
    PropertyMetadata(
        "organization",
        "organization or company name",
        "The organization or company name",
    ),
    PropertyMetadata(
        "connectedAppClientId",
        "Salesforce Connected App Consumer Key",
        "The Salesforce Connected App Consumer Key associated with the mobile app. "
        + _CONNECTED_APP_HELP,
    ),
    PropertyMetadata(
        "connectedAppCallbackUri",
        "Salesforce Connected App Callback URL",
        "The Salesforce Connected App Callback URL associated with the mobile app. "
        + _CONNECTED_APP_HELP,
    ),
    PropertyMetadata(
        "loginHost",
        "Salesforce login host",
        "The Salesforce login host for the mobile app.",
    ),
)

REQUIRED_PROPERTIES: tuple[str, ...] = tuple(p.name for p in USER_INPUT_PROPERTIES)
