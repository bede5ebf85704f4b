"""
Source Data Loader

Batch reads of the Sale and Customer source tables from the raw zone
(CSV, JSON Lines or Parquet files) or from a relational database.
Supports:
- File hashing for audit logging
- Column projection to the attributes the analytics use
- Seeding a database from DataFrames for local runs
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union
import hashlib

import polars as pl
import structlog
from pydantic import BaseModel
from sqlalchemy import insert, text

from src.config import get_settings
from src.database.connection import get_db
from src.database.models import Customer, Sale
from src.quality.validators import CUSTOMER_COLUMNS, SALES_COLUMNS, InputValidationError

logger = structlog.get_logger(__name__)
settings = get_settings()

# Column types of the source tables, matching src/database/models.py
COLUMN_TYPES: Dict[str, pl.DataType] = {
    "customerkey": pl.Int64,
    "orderkey": pl.Int64,
    "orderdate": pl.Date,
    "quantity": pl.Int64,
    "netprice": pl.Float64,
    "exchangerate": pl.Float64,
    "countryfull": pl.Utf8,
    "age": pl.Int64,
    "givenname": pl.Utf8,
    "surname": pl.Utf8,
}


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    JSONL = "jsonl"
    PARQUET = "parquet"

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "FileFormat":
        suffix = Path(path).suffix.lower().lstrip(".")
        if suffix == "ndjson":
            suffix = "jsonl"
        try:
            return cls(suffix)
        except ValueError:
            raise ValueError(f"Unsupported file format: {path}") from None


class LoadStatus(str, Enum):
    """Batch load status"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SourceFileConfig:
    """Configuration for reading one source file"""
    file_path: Union[str, Path]
    table: str
    columns: Sequence[str]
    file_format: Optional[FileFormat] = None
    delimiter: str = ","
    encoding: str = "utf-8"
    null_values: List[str] = field(default_factory=lambda: ["", "NULL", "null", "None", "NA", "N/A"])

    def __post_init__(self):
        if self.file_format is None:
            self.file_format = FileFormat.from_path(self.file_path)


class LoadResult(BaseModel):
    """Result of a batch load operation"""
    source: str
    table: str
    status: LoadStatus
    rows_loaded: int = 0
    error_message: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    file_hash: Optional[str] = None


@dataclass
class SourceData:
    """The two source tables plus their load audit records"""
    sales: pl.DataFrame
    customers: pl.DataFrame
    results: List[LoadResult] = field(default_factory=list)


def _project(df: pl.DataFrame, columns: Sequence[str], source: str) -> pl.DataFrame:
    """Lower-case column names and keep only the requested columns"""
    df = df.rename({col: col.strip().lower() for col in df.columns})
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise InputValidationError(f"{source} is missing required columns: {missing}")
    return df.select(columns)


class SourceLoader:
    """
    Loader for the Sale and Customer tables.

    Example:
        loader = SourceLoader()
        data = await loader.load_from_files("data/raw")
        data = await loader.load_from_database()
    """

    def _compute_file_hash(self, file_path: Path) -> str:
        """Compute MD5 hash of file for audit logging"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_csv(self, config: SourceFileConfig) -> pl.DataFrame:
        """Read CSV file with Polars"""
        return pl.read_csv(
            config.file_path,
            separator=config.delimiter,
            encoding=config.encoding,
            null_values=config.null_values,
            try_parse_dates=True,
        )

    def _read_jsonl(self, config: SourceFileConfig) -> pl.DataFrame:
        """Read JSON Lines (NDJSON) file"""
        return pl.read_ndjson(config.file_path)

    def _read_parquet(self, config: SourceFileConfig) -> pl.DataFrame:
        """Read Parquet file"""
        return pl.read_parquet(config.file_path)

    def _read_file(self, config: SourceFileConfig) -> pl.DataFrame:
        """Read file based on format"""
        readers = {
            FileFormat.CSV: self._read_csv,
            FileFormat.JSONL: self._read_jsonl,
            FileFormat.PARQUET: self._read_parquet,
        }
        reader = readers.get(config.file_format)
        if not reader:
            raise ValueError(f"Unsupported file format: {config.file_format}")
        return reader(config)

    def _fail(self, result: LoadResult, error: Exception) -> None:
        result.status = LoadStatus.FAILED
        result.error_message = str(error)
        result.completed_at = datetime.utcnow()
        logger.error(
            "Source load failed",
            source=result.source,
            table=result.table,
            error=str(error),
        )

    def _complete(self, result: LoadResult, rows: int) -> None:
        result.status = LoadStatus.COMPLETED
        result.rows_loaded = rows
        result.completed_at = datetime.utcnow()
        result.load_duration_seconds = (result.completed_at - result.started_at).total_seconds()
        logger.info(
            "Source load completed",
            source=result.source,
            table=result.table,
            rows=rows,
            duration_seconds=result.load_duration_seconds,
        )

    async def load_file(self, config: SourceFileConfig) -> tuple:
        """
        Load one source table from a file.

        Args:
            config: Source file configuration

        Returns:
            (DataFrame, LoadResult)

        Raises:
            FileNotFoundError: If the file does not exist
            InputValidationError: If required columns are missing
        """
        file_path = Path(config.file_path)
        result = LoadResult(
            source=str(file_path),
            table=config.table,
            status=LoadStatus.RUNNING,
            started_at=datetime.utcnow(),
        )

        logger.info("Starting source load", file=str(file_path), table=config.table)

        try:
            if not file_path.exists():
                raise FileNotFoundError(f"File not found: {file_path}")

            result.file_hash = self._compute_file_hash(file_path)
            df = _project(self._read_file(config), config.columns, str(file_path))
        except Exception as e:
            self._fail(result, e)
            raise

        self._complete(result, len(df))
        return df, result

    async def load_from_files(
        self,
        directory: Optional[Union[str, Path]] = None,
        sales_file: Optional[str] = None,
        customer_file: Optional[str] = None,
    ) -> SourceData:
        """
        Load both tables from the raw zone.

        Args:
            directory: Directory holding the files (defaults to the raw zone)
            sales_file: Sales file name (defaults to settings)
            customer_file: Customer file name (defaults to settings)
        """
        directory = Path(directory or settings.data_lake.raw_path)

        sales, sales_result = await self.load_file(
            SourceFileConfig(
                file_path=directory / (sales_file or settings.source.sales_file),
                table=settings.source.sales_table,
                columns=SALES_COLUMNS,
            )
        )
        customers, customers_result = await self.load_file(
            SourceFileConfig(
                file_path=directory / (customer_file or settings.source.customer_file),
                table=settings.source.customer_table,
                columns=CUSTOMER_COLUMNS,
            )
        )

        return SourceData(sales=sales, customers=customers, results=[sales_result, customers_result])

    async def load_table(self, table: str, columns: Sequence[str]) -> tuple:
        """
        Load one source table from the database.

        Returns:
            (DataFrame, LoadResult)
        """
        result = LoadResult(
            source="database",
            table=table,
            status=LoadStatus.RUNNING,
            started_at=datetime.utcnow(),
        )

        query = text(f"SELECT {', '.join(columns)} FROM {table}")
        try:
            async with get_db() as db:
                rows = (await db.execute(query)).fetchall()
        except Exception as e:
            self._fail(result, e)
            raise

        if rows:
            df = pl.DataFrame([dict(r._mapping) for r in rows], infer_schema_length=None)
        else:
            df = pl.DataFrame(schema={col: COLUMN_TYPES.get(col, pl.Utf8) for col in columns})

        self._complete(result, len(df))
        return df.select(columns), result

    async def load_from_database(self) -> SourceData:
        """Load both tables through the initialized database engine"""
        sales, sales_result = await self.load_table(settings.source.sales_table, SALES_COLUMNS)
        customers, customers_result = await self.load_table(settings.source.customer_table, CUSTOMER_COLUMNS)
        return SourceData(sales=sales, customers=customers, results=[sales_result, customers_result])


async def seed_database(
    sales: pl.DataFrame,
    customers: pl.DataFrame,
    chunk_size: int = 5000,
) -> Dict[str, int]:
    """
    Insert source DataFrames into the Sale and Customer tables.

    Used to populate a local database from generated data; the analytics
    themselves never write to the source tables.
    """
    counts = {}
    async with get_db() as db:
        for model, df in ((Customer, customers), (Sale, sales)):
            records = df.to_dicts()
            for i in range(0, len(records), chunk_size):
                await db.execute(insert(model), records[i:i + chunk_size])
            counts[model.__tablename__] = len(records)
            logger.info("Seeded table", table=model.__tablename__, rows=len(records))
    return counts
