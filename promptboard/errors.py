from enum import Enum


class ErrorCode(Enum):
    VALIDATION = "validation"
    PROMPT_NOT_FOUND = "prompt_not_found"
    PERSISTENCE = "persistence"
    INVALID_JSON = "invalid_json"
    NO_PROMPTS_ARRAY = "no_prompts_array"
    IMPORT_FAILED = "import_failed"
    INVALID_FILE = "invalid_file"
    BACKUP_NOT_FOUND = "backup_not_found"
    INVALID_BACKUP = "invalid_backup"
    EMPTY_EXPORT = "empty_export"
    COPY_FAILED = "copy_failed"


class PromptboardError(Exception):
    def __init__(self, code: ErrorCode, message: str, errors: list[str] | None = None):
        self.code = code
        self.message = message
        self.errors = errors or []
        super().__init__(message)

    @classmethod
    def validation(cls, errors: list[str]) -> "PromptboardError":
        return cls(ErrorCode.VALIDATION, "; ".join(errors), errors=list(errors))

    @classmethod
    def prompt_not_found(cls, prompt_id: str) -> "PromptboardError":
        return cls(ErrorCode.PROMPT_NOT_FOUND, f"Prompt not found: {prompt_id}")

    @classmethod
    def persistence(cls, detail: str) -> "PromptboardError":
        return cls(ErrorCode.PERSISTENCE, f"Failed to save: {detail}")

    @classmethod
    def invalid_json(cls) -> "PromptboardError":
        return cls(ErrorCode.INVALID_JSON, "Invalid JSON format")

    @classmethod
    def no_prompts_array(cls) -> "PromptboardError":
        return cls(ErrorCode.NO_PROMPTS_ARRAY, "No valid prompts array found")

    @classmethod
    def import_failed(cls, errors: list[str]) -> "PromptboardError":
        shown = "\n".join(errors[:5])
        if len(errors) > 5:
            shown += "\n..."
        return cls(ErrorCode.IMPORT_FAILED, f"Import failed:\n{shown}", errors=list(errors))

    @classmethod
    def invalid_file(cls, detail: str) -> "PromptboardError":
        return cls(ErrorCode.INVALID_FILE, detail)

    @classmethod
    def backup_not_found(cls, backup_id: str) -> "PromptboardError":
        return cls(ErrorCode.BACKUP_NOT_FOUND, f"Backup not found: {backup_id}")

    @classmethod
    def invalid_backup(cls, backup_id: str) -> "PromptboardError":
        return cls(ErrorCode.INVALID_BACKUP, f"Invalid backup data: {backup_id}")

    @classmethod
    def empty_export(cls) -> "PromptboardError":
        return cls(ErrorCode.EMPTY_EXPORT, "No prompts to export")

    @classmethod
    def copy_failed(cls) -> "PromptboardError":
        return cls(ErrorCode.COPY_FAILED, "Failed to copy")
