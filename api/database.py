from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
import os
from dotenv import load_dotenv
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ipam_sync.db")

# SQLite (local dev / tests) does not take the pool sizing arguments
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
else:
    # One sync cycle per pool server can run at once, plus API traffic
    engine = create_engine(
        DATABASE_URL,
        pool_size=10,           # Base connections kept open
        max_overflow=20,        # Additional connections when pool is full
        pool_timeout=60,        # Wait up to 60s for a connection
        pool_pre_ping=True,     # Check connections are alive before using
    )
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
