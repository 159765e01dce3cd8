import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud, schemas
from .auth import require_admin
from .config import Settings, get_settings
from .db import init_db, make_engine, make_session_factory
from .importer import import_document
from .normalize import DocumentValidationError
from .recipes import recipe_to_document

logger = logging.getLogger(__name__)


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def create_app(settings: Optional[Settings] = None, engine=None) -> FastAPI:
    """Build the API around an explicitly supplied engine.

    Run with `uvicorn --factory cookbook.app:create_app`.
    """
    settings = settings or get_settings()
    engine = engine or make_engine(settings.database_url, echo=settings.echo_sql)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        yield
        engine.dispose()

    app = FastAPI(title="Chang Cookbook", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = make_session_factory(engine)

    # Allow CORS for API clients (adjust origins for production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            {"error": exc.detail},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.get("/api/categories")
    def list_categories(db: Session = Depends(get_db)):
        categories = crud.get_categories(db)
        return {
            "categories": [
                schemas.CategoryOut.model_validate(c).model_dump()
                for c in categories
            ]
        }

    @app.get("/api/recipes", response_model=schemas.RecipePage)
    def list_recipes(
        request: Request,
        response: Response,
        q: Optional[str] = None,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        featured: Optional[bool] = None,
        sort: str = "newest",
        page: int = 1,
        page_size: int = 10,
        db: Session = Depends(get_db),
    ):
        page = max(page, 1)
        page_size = min(max(page_size, 1), 100)
        items, total = crud.search_recipes(
            db,
            q=q,
            category=category,
            difficulty=difficulty,
            featured=featured,
            sort=sort,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        links = []
        if page > 1:
            prev_url = request.url.include_query_params(page=page - 1)
            links.append(f'<{prev_url}>; rel="prev"')
        if page * page_size < total:
            next_url = request.url.include_query_params(page=page + 1)
            links.append(f'<{next_url}>; rel="next"')
        if links:
            response.headers["Link"] = ", ".join(links)
        return {
            "items": [recipe_to_document(r) for r in items],
            "total": total,
            "page": page,
            "page_size": page_size,
        }

    # registered before /api/recipes/{recipe_id} so "hero" is not taken as an id
    @app.get("/api/recipes/hero")
    def hero_recipe(db: Session = Depends(get_db)):
        r = crud.get_hero_recipe(db)
        if not r:
            raise HTTPException(status_code=404, detail="No hero recipe")
        return recipe_to_document(r)

    @app.get("/api/recipes/slug/{slug}")
    def recipe_by_slug(slug: str, db: Session = Depends(get_db)):
        r = crud.get_recipe_by_slug(db, slug)
        if not r:
            raise HTTPException(status_code=404, detail="Recipe not found")
        return recipe_to_document(r)

    @app.get("/api/recipes/{recipe_id}")
    def recipe_by_id(recipe_id: str, db: Session = Depends(get_db)):
        r = crud.get_recipe(db, recipe_id)
        if not r:
            raise HTTPException(status_code=404, detail="Recipe not found")
        return recipe_to_document(r)

    @app.post("/api/admin/migrate", response_model=schemas.MigrateResponse)
    def migrate(
        jsonFile: Optional[UploadFile] = File(None),
        db: Session = Depends(get_db),
        _token: str = Depends(require_admin),
    ):
        if jsonFile is None:
            raise HTTPException(status_code=400, detail="No JSON file provided")
        try:
            document = json.loads(jsonFile.file.read())
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise HTTPException(status_code=400, detail="Invalid JSON format")

        logger.info("Migration requested with %s", jsonFile.filename)
        try:
            result = import_document(
                db,
                document,
                admin_email=settings.admin_email,
                admin_name=settings.admin_name,
            )
        except DocumentValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {
            "message": "Migration completed successfully",
            "results": schemas.MigrateResults.from_result(result),
        }

    @app.post("/api/admin/recipes/{recipe_id}/hero")
    def make_hero(
        recipe_id: str,
        db: Session = Depends(get_db),
        _token: str = Depends(require_admin),
    ):
        r = crud.set_hero_recipe(db, recipe_id)
        if not r:
            raise HTTPException(status_code=404, detail="Recipe not found")
        return {"id": r.id, "heroFeatured": r.hero_featured}

    @app.delete("/api/admin/recipes/{recipe_id}")
    def remove_recipe(
        recipe_id: str,
        db: Session = Depends(get_db),
        _token: str = Depends(require_admin),
    ):
        if not crud.delete_recipe(db, recipe_id):
            raise HTTPException(status_code=404, detail="Recipe not found")
        return {"deleted": True}

    return app
