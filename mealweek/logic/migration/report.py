"""Migration report models, dumped with camelCase keys (``model_dump(by_alias=True)``)."""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TableStats(_CamelModel):
    total: int = 0
    inserted: int = 0
    skipped: int = 0
    failed: int = 0


class MigrationSummary(_CamelModel):
    total_records: int = 0
    inserted: int = 0
    skipped: int = 0
    failed: int = 0


class MigrationReport(_CamelModel):
    started_at: str
    completed_at: Optional[str] = None
    success: bool = False
    tables: Dict[str, TableStats] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    summary: MigrationSummary = Field(default_factory=MigrationSummary)

    def add_table(self, name: str, stats: TableStats):
        self.tables[name] = stats
        self.summary.total_records += stats.total
        self.summary.inserted += stats.inserted
        self.summary.skipped += stats.skipped
        self.summary.failed += stats.failed

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


class MigrationStatus(_CamelModel):
    configured: bool
    has_data: bool = False
    has_local_data: bool = False
    remote_record_count: int = 0
    migration_complete: bool = False
    error: Optional[str] = None
