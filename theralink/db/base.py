from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Models import Base from here; theralink.db.models registers all of them
# so Base.metadata is complete before create_all() or Alembic autogenerate.
