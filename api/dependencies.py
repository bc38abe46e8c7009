from dotenv import load_dotenv
load_dotenv()

from database import SessionLocal


### Get Database Session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
