from airalert.db.base import Base
from airalert.db.session import engine
from airalert.db import models  # noqa: F401  # Registers every table on Base.metadata

if __name__ == "__main__":
    print("Creating tables...")
    Base.metadata.create_all(bind=engine)
    print("Tables created.")
