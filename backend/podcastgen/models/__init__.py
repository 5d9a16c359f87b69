# Importing the models registers them with SQLAlchemy's metadata so that
# create_all() and relationship resolution see every table.

from .podcast import Podcast
from .transcript import Transcript
from .tag import Tag
