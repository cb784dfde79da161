import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, JSONResponse
from sqlalchemy.orm import Session, sessionmaker

import config
import ddl
import explain
import index_advisor
import models_sqlalchemy as models
import models_pydantic as schemas
import normalization
import partitioning
import queries
import reports
import seed
import variants
from errors import PartitionPlanError, UnknownQueryError, UnknownVariantError

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)

engine = ddl.make_engine(models.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@asynccontextmanager
async def lifespan(app):
    ddl.create_schema(engine)
    yield


app = FastAPI(title="Booking Marketplace Schema Lab", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Dependency to get a DB session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# ---------- Schema Endpoints ----------
@app.get("/schema/ddl", response_class=PlainTextResponse)
def get_schema_ddl(dialect: str = "postgresql", variant: str = "canonical"):
    try:
        metadata = variants.get_variant(variant)
        return ddl.render_ddl(metadata, dialect_name=dialect)
    except UnknownVariantError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/schema/normalization", response_model=List[schemas.NormalizationViolationResponse])
def get_normalization(variant: str = "canonical"):
    try:
        metadata = variants.get_variant(variant)
    except UnknownVariantError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return normalization.check_metadata(metadata)

@app.get("/schema/variants/{name}", response_model=List[schemas.VariantReconciliationResponse])
def get_variant_reconciliation(name: str):
    try:
        return variants.reconcile_variant(name)
    except UnknownVariantError as e:
        raise HTTPException(status_code=404, detail=str(e))

# ---------- Query Endpoints ----------
@app.get("/queries/", response_model=List[schemas.QueryInfo])
def list_queries():
    return [
        schemas.QueryInfo(name=q.name, description=q.description, sql=queries.to_sql(q.build()))
        for q in queries.CATALOG.values()
    ]

@app.get("/queries/{name}")
def run_named_query(name: str, db: Session = Depends(get_db)):
    try:
        rows = queries.run_query(db, name)
    except UnknownQueryError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return JSONResponse(content=jsonable_encoder(rows))

@app.get("/queries/{name}/explain", response_model=schemas.QueryProfileResponse)
def explain_named_query(name: str, analyze: bool = True, db: Session = Depends(get_db)):
    try:
        named = queries.get_query(name)
    except UnknownQueryError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return explain.profile(db, named.build(), name=name, analyze=analyze)

# ---------- Index Advisor ----------
@app.post("/indexes/recommendations", response_model=List[schemas.IndexRecommendationResponse])
def recommend_indexes(request: schemas.RecommendationRequest):
    patterns = [index_advisor.pattern_from_schema(p) for p in request.patterns]
    stats = [index_advisor.ColumnStats(s.table, s.column, s.rows, s.distinct) for s in request.stats]
    metadata = models.Base.metadata if request.include_existing else None
    recs = index_advisor.recommend(patterns, stats=stats, metadata=metadata)
    return index_advisor.recommendation_rows(recs)

# ---------- Partitioning ----------
@app.get("/partitions/plan", response_model=schemas.PartitionPlanResponse)
def plan_partitions(
    start: date,
    end: date,
    granularity: str = "yearly",
    lo: Optional[date] = None,
    hi: Optional[date] = None,
):
    try:
        plan = partitioning.plan_partitions(start, end, granularity)
        pruned = None
        if lo is not None and hi is not None:
            pruned = [p.name for p in partitioning.prune(plan.partitions, lo, hi)]
        script = partitioning.render_partition_ddl(plan)
    except PartitionPlanError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.PartitionPlanResponse(
        table=plan.table,
        column=plan.column,
        granularity=plan.granularity,
        partitions=[schemas.PartitionResponse.model_validate(p) for p in plan.partitions],
        pruned=pruned,
        ddl=script,
    )

# ---------- Reports ----------
@app.get("/reports/{kind}", response_class=PlainTextResponse)
def get_report(kind: str, save: bool = Query(False), db: Session = Depends(get_db)):
    if kind not in reports.REPORT_KINDS:
        raise HTTPException(status_code=404, detail=f"Unknown report: {kind}")
    content = reports.build_report(kind, db, models.Base.metadata)
    if save:
        reports.write_report(kind, content)
    return content

# ---------- Seed ----------
@app.post("/seed", response_model=schemas.SeedResult)
def load_seed_data(db: Session = Depends(get_db)):
    loaded = seed.load_seed(db)
    result = schemas.SeedResult(loaded=loaded, counts=seed.table_counts(db))
    return JSONResponse(
        status_code=status.HTTP_201_CREATED if loaded else status.HTTP_200_OK,
        content=result.model_dump(),
    )
