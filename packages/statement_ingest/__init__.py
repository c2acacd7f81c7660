"""Public interface for the ``statement_ingest`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
Database-backed helpers take a caller-owned SQLAlchemy ``Session``.
"""

from .api import (
    import_statement,
    ingest_upload,
    parse_csv_statement,
    propose_obligation_matches,
)
from .categorization import (
    categorize_transaction,
    effective_keywords,
    is_internal_transfer,
    sanitize_category,
)
from .errors import (
    ExtractionError,
    StatementFormatError,
    StatementIngestError,
    UnsupportedMediaTypeError,
)
from .extraction import (
    ExtractionOracle,
    OpenAIExtractionOracle,
    extract_transactions,
    parse_extraction_response,
)
from .formats import BANK_MAPPINGS, detect_bank_format
from .importer import import_transactions, record_matched_payments
from .matching import MatchPolicy, match_obligations
from .models import (
    CATEGORIES,
    ColumnMapping,
    ExtractedTransaction,
    ImportResult,
    KeywordSettings,
    ObligationMatch,
    ObligationRef,
    ParsedTransaction,
    PaymentRef,
    StatementParseResult,
    TransactionSummary,
)
from .normalizers import decode_rows, normalize_row, parse_bank_statement
from .summary import default_accepted, select_transactions, summarize_transactions

__all__ = [
    # API
    "import_statement",
    "ingest_upload",
    "parse_csv_statement",
    "propose_obligation_matches",
    # Pipeline stages
    "decode_rows",
    "detect_bank_format",
    "normalize_row",
    "parse_bank_statement",
    "categorize_transaction",
    "effective_keywords",
    "is_internal_transfer",
    "sanitize_category",
    "extract_transactions",
    "parse_extraction_response",
    "match_obligations",
    "import_transactions",
    "record_matched_payments",
    "summarize_transactions",
    "select_transactions",
    "default_accepted",
    # Models / types
    "BANK_MAPPINGS",
    "CATEGORIES",
    "ColumnMapping",
    "ExtractedTransaction",
    "ExtractionOracle",
    "ImportResult",
    "KeywordSettings",
    "MatchPolicy",
    "ObligationMatch",
    "ObligationRef",
    "OpenAIExtractionOracle",
    "ParsedTransaction",
    "PaymentRef",
    "StatementParseResult",
    "TransactionSummary",
    # Errors
    "ExtractionError",
    "StatementFormatError",
    "StatementIngestError",
    "UnsupportedMediaTypeError",
]
