"""
Typed views on Jira REST responses.

Every field is optional and unknown keys are ignored. A field whose value does
not validate falls back to its default on its own, so one unexpected value
(`"subtask": null`, a non-numeric worklog id) leaves the rest of the object intact.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class JiraModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_on_invalid(cls, value, handler, info):
        try:
            return handler(value)
        except ValidationError:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)

    @classmethod
    def from_api(cls, data: Any):
        """Decode a JSON object; anything that is not an object yields an empty instance."""
        if not isinstance(data, dict):
            return cls()
        return cls.model_validate(data)


class JiraStatus(JiraModel):
    id: Optional[str] = None
    name: Optional[str] = None


class JiraAssignee(JiraModel):
    name: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    email_address: Optional[str] = Field(None, alias="emailAddress")


class JiraIssueType(JiraModel):
    id: Optional[str] = None
    name: Optional[str] = None
    subtask: bool = False


class JiraSubtaskFields(JiraModel):
    summary: Optional[str] = None
    status: Optional[JiraStatus] = None
    assignee: Optional[JiraAssignee] = None
    issuetype: Optional[JiraIssueType] = None


class JiraSubtask(JiraModel):
    id: Optional[str] = None
    key: Optional[str] = None
    fields: Optional[JiraSubtaskFields] = None


class JiraIssueFields(JiraModel):
    summary: Optional[str] = None
    description: Optional[Any] = None
    status: Optional[JiraStatus] = None
    assignee: Optional[JiraAssignee] = None
    issuetype: Optional[JiraIssueType] = None
    subtasks: List[JiraSubtask] = Field(default_factory=list)

    def is_epic(self) -> bool:
        return bool(self.issuetype and self.issuetype.name and self.issuetype.name.lower() == "epic")

    def get_subtask_keys(self) -> List[str]:
        return [subtask.key for subtask in self.subtasks if subtask.key]


class JiraIssue(JiraModel):
    id: Optional[str] = None
    key: Optional[str] = None
    self_url: Optional[str] = Field(None, alias="self")
    fields: Optional[JiraIssueFields] = None

    def is_epic(self) -> bool:
        return self.fields is not None and self.fields.is_epic()


class JiraWorkLog(JiraModel):
    id: Optional[int] = None
    self_url: Optional[str] = Field(None, alias="self")
    comment: Optional[Any] = None  # plain text (v2) or ADF document (v3)
    started: Optional[str] = None
    time_spent_seconds: Optional[int] = Field(None, alias="timeSpentSeconds")

    def has_valid_id(self) -> bool:
        return self.id is not None and self.id > 0


class JiraTransition(JiraModel):
    id: Optional[str] = None
    name: Optional[str] = None
    to: Optional[JiraStatus] = None


class JiraSearchResult(JiraModel):
    start_at: int = Field(0, alias="startAt")
    max_results: int = Field(0, alias="maxResults")
    total: int = 0
    issues: List[JiraIssue] = Field(default_factory=list)
