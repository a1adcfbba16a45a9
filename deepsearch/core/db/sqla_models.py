from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    BigInteger,
    ForeignKey,
    Text,
    TIMESTAMP,
    Index,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

class User(Base):
    __tablename__ = 'users'
    id = Column(String(255), primary_key=True)
    telegram_id = Column(BigInteger, unique=True)
    username = Column(String(255))
    full_name = Column(String(255))
    api_token_hash = Column(String(64), unique=True)
    is_admin = Column(Boolean, nullable=False, default=False, server_default='false')
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

class Chat(Base):
    __tablename__ = 'chats'
    id = Column(String(255), primary_key=True)
    user_id = Column(String(255), ForeignKey('users.id'), nullable=False)
    title = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (Index('chats_user_id_idx', 'user_id'),)

class Message(Base):
    __tablename__ = 'messages'
    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(String(255), ForeignKey('chats.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(50), nullable=False)
    parts = Column(JSONB, nullable=False)
    position = Column(Integer, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint('chat_id', 'position', name='messages_chat_position_key'),)

class UserRequest(Base):
    __tablename__ = 'user_requests'
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), ForeignKey('users.id'), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (Index('user_requests_user_created_idx', 'user_id', 'created_at'),)
