from sqlalchemy import Column, Integer, Text
from recruitment.database import Base


class UserPermission(Base):
    __tablename__ = "user_permissions"

    user_id = Column(Integer, primary_key=True)
    permission = Column(Text, primary_key=True)
