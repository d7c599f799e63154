from identity_core.db.base import Base
from identity_core.db.session import engine
import identity_core.db.models  # noqa


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)


if __name__ == "__main__":
    init_db()
