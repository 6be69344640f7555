import os
from pathlib import Path

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from .backup import BackupManager
from .engine import PromptEngine
from .storage import Storage
from .tools.backups import register_tools as register_backup_tools
from .tools.prompts import register_tools as register_prompt_tools

load_dotenv()


def _env_path(name: str) -> Path | None:
    value = os.environ.get(name)
    return Path(value).expanduser() if value else None


mcp = FastMCP("promptboard")
storage = Storage(db_path=_env_path("PROMPTBOARD_DB"))
engine = PromptEngine(storage)
backups = BackupManager(storage, engine, backups_dir=_env_path("PROMPTBOARD_BACKUPS_DIR"))
register_prompt_tools(mcp, engine, backups)
register_backup_tools(mcp, backups)


def main():
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
