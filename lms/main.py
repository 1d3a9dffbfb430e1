import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from lms.core import config
from lms.database import Base, engine
from lms.models import course, coursework, user
from lms.routes import auth_routes, course_routes, coursework_routes

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)

logger = logging.getLogger(__name__)

config.validate_runtime_config()

app = FastAPI(title='Learning Management System API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

# Imported for their side effect of registering tables on Base.metadata.
_MODELS = (user, course, coursework)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')


@app.get('/')
def root():
    return {'status': 'Learning Management System API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(course_routes.router, prefix='/courses')
app.include_router(coursework_routes.router)


def run() -> None:
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == '__main__':
    run()
