from typing import Annotated

from fastmcp.tools.tool_transform import ArgTransform
from pydantic import Field

OWNER_DESCRIPTION = "The owner of the repository."
OWNER = Annotated[str, Field(description=OWNER_DESCRIPTION)]
OWNER_ARG_TRANSFORM = ArgTransform(description=OWNER_DESCRIPTION)

REPO_DESCRIPTION = "The name of the repository."
REPO = Annotated[str, Field(description=REPO_DESCRIPTION)]
REPO_ARG_TRANSFORM = ArgTransform(description=REPO_DESCRIPTION)

USERNAME_DESCRIPTION = "The GitHub username."
USERNAME = Annotated[str, Field(description=USERNAME_DESCRIPTION)]
USERNAME_ARG_TRANSFORM = ArgTransform(description=USERNAME_DESCRIPTION)

QUESTION = Annotated[str, Field(description="The question to answer.")]
CODE = Annotated[str, Field(description="The source code to work on.")]

VISITOR_ID = Annotated[str | None, Field(description="An opaque id of the visitor, used for usage analytics.")]
