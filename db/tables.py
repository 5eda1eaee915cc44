from sqlalchemy import JSON, Column, DateTime, Integer, String, func

from db.database import Base


class FormRow(Base):
    __tablename__ = "forms"

    form_id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    url = Column(String(1024), nullable=False)
    owner_id = Column(String(128), index=True)
    notification_email = Column(String(320))
    folder_id = Column(String(64))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class FolderRow(Base):
    __tablename__ = "folders"

    folder_id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    owner_id = Column(String(128), index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class SubmissionRow(Base):
    __tablename__ = "submissions"

    # Write order; breaks ties between equal server timestamps
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False)
    form_id = Column(String(64), index=True, nullable=False)
    data = Column(JSON, nullable=False)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
