"""Schema script execution against the provisioned database."""

from pathlib import Path
from typing import Iterable

import psycopg

from appserver_testenv.constants import (
    DDL_FILE,
    POSTGRES_DB,
    POSTGRES_PASSWORD,
    POSTGRES_PORT,
    POSTGRES_USER,
)
from appserver_testenv.errors import SchemaSetupError, ScriptParseError
from appserver_testenv.errors_catalog import actionable_error
from appserver_testenv.models import ContainerHandle
from appserver_testenv.services.sql_script import split_statements


class SchemaService:
    """Loads the schema script and runs it over a direct database connection."""

    def __init__(self, logger, console, psycopg_module=psycopg):
        self.logger = logger
        self.console = console
        self.psycopg = psycopg_module

    def find_script(self, name: str, resource_dirs: Iterable[str]) -> Path:
        searched = []
        for directory in resource_dirs:
            candidate = Path(directory) / name
            searched.append(str(candidate))
            if candidate.is_file():
                return candidate

        raise FileNotFoundError(
            actionable_error("schema_resource_not_found", name=name, paths=", ".join(searched))
        )

    def load_script(self, name: str, resource_dirs: Iterable[str]) -> str:
        path = self.find_script(name, resource_dirs)
        self.logger.info("Loading schema script %s", path)
        return path.read_text(encoding="utf-8")

    def connect(self, handle: ContainerHandle):
        return self.psycopg.connect(
            host=handle.host,
            port=handle.mapped_port(POSTGRES_PORT),
            dbname=POSTGRES_DB,
            user=POSTGRES_USER,
            password=POSTGRES_PASSWORD,
        )

    def execute_script(self, handle: ContainerHandle, script: str) -> int:
        statements = split_statements(script)

        with self.connect(handle) as connection:
            with connection.cursor() as cursor:
                for statement in statements:
                    self.logger.debug("Executing statement: %s", statement)
                    cursor.execute(statement)

        return len(statements)

    def setup_schema(self, handle: ContainerHandle, resource_dirs: Iterable[str], script_name: str = DDL_FILE):
        self.console.print(f"[blue]Applying {script_name}...[/blue]")

        try:
            script = self.load_script(script_name, resource_dirs)
            executed = self.execute_script(handle, script)
        except (self.psycopg.Error, ScriptParseError, OSError, UnicodeDecodeError) as exc:
            raise SchemaSetupError(f"Failed to apply {script_name}: {exc}") from exc

        self.logger.info("Executed %s statement(s) from %s", executed, script_name)
        self.console.print(f"[green]{script_name} applied.[/green]")
