"""Contracts of the external capabilities the mobile workflow delegates to.

Each capability has an input model, whose JSON schema is sent with the delegate
request, and a result model used to validate what the external actor returns.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

INPUT_EXTRACTION = "sfmobile-native-input-extraction"
GET_INPUT = "sfmobile-native-get-input"
TEMPLATE_DISCOVERY = "sfmobile-native-template-discovery"
PROJECT_GENERATION = "sfmobile-native-project-generation"
BUILD_RECOVERY = "sfmobile-native-build-recovery"

Platform = Literal["iOS", "Android"]


class _Result(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PropertyToExtract(BaseModel):
    propertyName: str = Field(description="The name of the property")
    description: str = Field(description="The description of the property")


class InputExtractionInput(BaseModel):
    userUtterance: Any = Field(
        default=None,
        description="Raw user input: text, structured data, or any format describing the request",
    )
    propertiesToExtract: list[PropertyToExtract] = Field(
        description="The properties to extract from the user input"
    )
    resultSchema: str = Field(
        description="The JSON schema defining the extracted properties structure, as a string"
    )


class ExtractedProperties(_Result):
    platform: Platform | None = None
    projectName: str | None = None
    packageName: str | None = None
    organization: str | None = None
    connectedAppClientId: str | None = None
    connectedAppCallbackUri: str | None = None
    loginHost: str | None = None


class PropertyRequiringInput(BaseModel):
    propertyName: str = Field(description="The name of the property")
    friendlyName: str = Field(description="The friendly name of the property")
    description: str = Field(description="The description of the property")


class GetInputInput(BaseModel):
    propertiesRequiringInput: list[PropertyRequiringInput] = Field(
        description="The properties that require input from the user"
    )


class GetInputResult(_Result):
    userUtterance: Any = Field(default=None, description="The user's response to the question")


class TemplateDiscoveryInput(BaseModel):
    platform: Platform


class TemplateDiscoveryResult(_Result):
    selectedTemplate: str = Field(min_length=1, description="The template id selected")
    templateOptions: dict[str, Any] | None = Field(
        default=None,
        description="Template listing the selection came from, including template metadata",
    )


class ProjectGenerationInput(BaseModel):
    selectedTemplate: str = Field(description="The template id selected from template discovery")
    projectName: str
    platform: Platform
    packageName: str = Field(description="Package name for the mobile app")
    organization: str = Field(description="Organization name for the mobile app project")
    connectedAppClientId: str = Field(description="Connected App Client ID for OAuth configuration")
    connectedAppCallbackUri: str = Field(
        description="Connected App Callback URI for OAuth configuration"
    )
    loginHost: str | None = Field(default=None, description="Optional Salesforce login host URL")
    templateProperties: dict[str, str] | None = Field(
        default=None,
        description="Custom template-specific properties required by the selected template",
    )


class ProjectGenerationResult(_Result):
    projectPath: str = Field(min_length=1, description="The path to the generated project")


class BuildRecoveryInput(BaseModel):
    platform: Platform
    projectPath: str
    projectName: str
    buildOutputFilePath: str = Field(description="Path to the failed build output file")
    attemptNumber: int = Field(description="Current build attempt number")


class BuildRecoveryResult(_Result):
    fixesAttempted: list[str] = Field(default_factory=list)
    readyForRetry: bool = False


class AndroidSetupResult(_Result):
    androidHome: str | None = None
    javaHome: str | None = None
