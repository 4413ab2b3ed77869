from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ConfigDict, ValidationError
import logging
import traceback
from typing import Dict, Any, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

import config

# Configure logging
logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

from sqlchain import (
    GeneratorOptions,
    ParseError,
    QueryIR,
    QuoteStyle,
    RoundTripResult,
    ir_to_sql,
    parse_sql_to_ir,
    validate_ir,
    validate_round_trip,
)

app = FastAPI(title="sqlchain")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"message": "sqlchain API", "status": "running"}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


class SqlToIRRequest(BaseModel):
    sql: str


class SqlToIRResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    ir: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_type: Optional[str] = Field(None, alias="errorType")
    position: Optional[int] = None
    line: Optional[int] = None
    column: Optional[int] = None
    hint: Optional[str] = None


@app.post("/api/sql-to-ir", response_model=SqlToIRResponse, response_model_by_alias=True)
async def sql_to_ir_endpoint(req: SqlToIRRequest):
    """
    Parse SQL query into Intermediate Representation (IR).

    On a parse failure the response points at the offending token.
    """
    try:
        ir = parse_sql_to_ir(req.sql)
        return SqlToIRResponse(success=True, ir=ir.model_dump(mode="json", by_alias=True))
    except ParseError as e:
        return SqlToIRResponse(
            success=False,
            error=e.message,
            error_type=type(e).__name__,
            position=e.position,
            line=e.line,
            column=e.column,
            hint=e.hint,
        )
    except Exception as e:
        logger.error(f"[sql_to_ir] Unexpected error: {e}")
        logger.error(traceback.format_exc())
        return SqlToIRResponse(
            success=False,
            error=f"Failed to parse SQL: {str(e)}",
            error_type="InternalError",
        )


class IRToSqlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ir: Dict[str, Any]
    quote_style: Optional[QuoteStyle] = Field(None, alias="quoteStyle")
    pretty: bool = False


class IRToSqlResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    sql: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = Field(None, alias="errorType")


@app.post("/api/ir-to-sql", response_model=IRToSqlResponse, response_model_by_alias=True)
async def ir_to_sql_endpoint(req: IRToSqlRequest):
    """
    Convert Intermediate Representation (IR) back to SQL string.

    IR that did not come from the parser is validated before generation.
    """
    try:
        ir = QueryIR.model_validate(req.ir)
        validate_ir(ir)
    except (ValidationError, ValueError) as e:
        logger.info(f"[ir_to_sql] Rejected IR: {e}")
        return IRToSqlResponse(
            success=False,
            error=f"Invalid IR: {str(e)}",
            error_type="InvalidIR",
        )

    try:
        options = GeneratorOptions(
            quote_style=req.quote_style or QuoteStyle(config.QUOTE_STYLE),
            pretty=req.pretty,
        )
        return IRToSqlResponse(success=True, sql=ir_to_sql(ir, options))
    except Exception as e:
        logger.error(f"[ir_to_sql] Error: {e}")
        logger.error(traceback.format_exc())
        return IRToSqlResponse(
            success=False,
            error=f"Failed to generate SQL: {str(e)}",
            error_type="InternalError",
        )


class RoundTripRequest(BaseModel):
    sql: str


@app.post("/api/round-trip", response_model=RoundTripResult)
async def round_trip_endpoint(req: RoundTripRequest):
    """Parse, regenerate and compare; reports whether the SQL survives unchanged in meaning."""
    return validate_round_trip(req.sql)
