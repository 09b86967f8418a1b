from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.sql import func
from database import Base


class Country(Base):
    __tablename__ = 'countries'

    # ids come from the source dataset and are never generated here
    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String, nullable=False)
    iso3 = Column(String, nullable=True)
    iso2 = Column(String, nullable=True)
    numeric_code = Column(String, nullable=True)
    phonecode = Column(String, nullable=True)
    capital = Column(String, nullable=True)
    currency = Column(String, nullable=True)
    currency_name = Column(String, nullable=True)
    currency_symbol = Column(String, nullable=True)
    tld = Column(String, nullable=True)
    native = Column(String, nullable=True)
    region = Column(String, nullable=True)
    subregion = Column(String, nullable=True)
    nationality = Column(String, nullable=True)
    emoji = Column(String, nullable=True)
    emojiU = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=True)

    __table_args__ = (
        Index("idx_countries_name", "name"),
        Index("idx_countries_iso2", "iso2"),
    )


class State(Base):
    __tablename__ = 'states'

    id = Column(Integer, primary_key=True, autoincrement=False)
    country_id = Column(Integer, ForeignKey("countries.id"), nullable=False)
    name = Column(String, nullable=False)
    iso2 = Column(String, nullable=True)
    iso3166_2 = Column(String, nullable=True)
    latitude = Column(String, nullable=True)
    longitude = Column(String, nullable=True)
    type = Column(String, nullable=True)
    timezone = Column(String, nullable=True)

    __table_args__ = (
        Index("idx_states_country_id", "country_id"),
        Index("idx_states_name", "name"),
    )


class City(Base):
    __tablename__ = 'cities'

    id = Column(Integer, primary_key=True, autoincrement=False)
    state_id = Column(Integer, ForeignKey("states.id"), nullable=False)
    name = Column(String, nullable=False)
    latitude = Column(String, nullable=True)
    longitude = Column(String, nullable=True)
    timezone = Column(String, nullable=True)

    __table_args__ = (
        Index("idx_cities_state_id", "state_id"),
        Index("idx_cities_name", "name"),
    )
