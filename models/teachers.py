from sqlalchemy import Column, Integer, String, Float
from database import Base


class Teacher(Base):
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(150), nullable=True)
    hourly_rate = Column(Float, default=0.0)
    currency = Column(String(3), default="USD")
    status = Column(String(10), default="active")  # active, inactive
