from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Models register themselves via app.db.models; import that package before create_all
