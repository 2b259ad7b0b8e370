# freelancedesk/files.py

"""
Versioned project files.

A ``ProjectFile`` row is the current pointer for one file name in a project:
``version`` is the version counter and ``current_version_id`` the row of the
blob being served. Each upload adds a ``FileVersion`` with its own blob at
``{project_id}/{name}/v{n}``.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.utils import secure_filename

from .errors import ConflictError, NotFoundError, UpstreamFailure, ValidationError
from .extensions import db, storage
from .models import FileDownload, FileVersion, ProjectFile, User
from .storage import StorageError

logger = logging.getLogger(__name__)

BUCKET = 'files'


def version_path(project_id, name, version_number):
    return f'{project_id}/{name}/v{version_number}'


def get_file(project_id, name):
    record = ProjectFile.query.filter_by(project_id=project_id, name=name).first()
    if record is None:
        raise NotFoundError('File not found.')
    return record


def list_files(project_id):
    return (ProjectFile.query
            .filter_by(project_id=project_id)
            .order_by(ProjectFile.created_at.desc())
            .all())


def upload_file(project_id, filename, blob, mime_type, user_id):
    name = secure_filename(filename or '')
    if not name:
        raise ValidationError('Please choose a file to upload.')

    record = ProjectFile.query.filter_by(project_id=project_id, name=name).first()
    number = record.version + 1 if record else 1
    path = version_path(project_id, name, number)

    if record is None:
        record = ProjectFile(project_id=project_id, name=name, uploaded_by=user_id)
        db.session.add(record)
    record.path = path
    record.size_bytes = len(blob)
    record.mime_type = mime_type
    record.version = number

    version = FileVersion(
        project_file=record,
        version_number=number,
        file_path=path,
        size_bytes=len(blob),
        mime_type=mime_type,
        created_by=user_id,
    )
    db.session.add(version)

    # Claim the version number before the blob is written
    try:
        db.session.flush()
    except IntegrityError as e:
        db.session.rollback()
        logger.warning('Version %s of %s was taken by a concurrent upload', number, name)
        raise ConflictError('This file was just updated by someone else. Please upload again.') from e

    try:
        storage.upload(BUCKET, path, blob, content_type=mime_type)
    except StorageError as e:
        db.session.rollback()
        logger.error('Upload of %s failed: %s', path, e, exc_info=True)
        raise UpstreamFailure('The file could not be stored. Please try again.') from e

    record.current_version_id = version.id
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        # The orphaned blob is overwritten by the next upload of this version
        db.session.rollback()
        logger.error('Recording %s failed: %s', path, e, exc_info=True)
        raise UpstreamFailure() from e
    logger.info('Stored %s as version %s', name, number)
    return record


def current_storage_path(record):
    """The pointer wins; then the highest version number; then the record path."""
    if record.current_version_id:
        version = db.session.get(FileVersion, record.current_version_id)
        if version is not None and version.project_file_id == record.id:
            return version.file_path
    latest = (FileVersion.query
              .filter_by(project_file_id=record.id)
              .order_by(FileVersion.version_number.desc())
              .first())
    if latest is not None:
        return latest.file_path
    return record.path


def record_download(project_id, file_name, user_id):
    db.session.add(FileDownload(project_id=project_id, file_name=file_name, user_id=user_id))
    db.session.commit()


def signed_url(path, ttl):
    try:
        return storage.create_signed_url(BUCKET, path, ttl)
    except StorageError as e:
        logger.error('Signed URL for %s failed: %s', path, e)
        raise NotFoundError('File not found.') from e


def get_version(record, version_id):
    version = FileVersion.query.filter_by(id=version_id, project_file_id=record.id).first()
    if version is None:
        raise NotFoundError('File version not found.')
    return version


def versions_with_creators(record):
    versions = (FileVersion.query
                .filter_by(project_file_id=record.id)
                .order_by(FileVersion.version_number.desc())
                .all())
    user_ids = {v.created_by for v in versions}
    users = {u.id: u for u in User.query.filter(User.id.in_(user_ids)).all()} if user_ids else {}
    result = []
    for v in versions:
        creator = users.get(v.created_by)
        result.append({
            'id': v.id,
            'project_file_id': v.project_file_id,
            'version_number': v.version_number,
            'file_path': v.file_path,
            'size_bytes': v.size_bytes,
            'mime_type': v.mime_type,
            'created_at': v.created_at.isoformat(),
            'created_by': v.created_by,
            'createdBy': {
                'id': v.created_by,
                'name': creator.name if creator else 'Unknown',
                'email': creator.email if creator else '',
            },
        })
    return result


def list_downloads(project_id, file_name, only_user_id=None):
    query = FileDownload.query.filter_by(project_id=project_id, file_name=file_name)
    if only_user_id is not None:
        query = query.filter_by(user_id=only_user_id)
    return query.order_by(FileDownload.downloaded_at.desc()).all()


def delete_file(record):
    paths = [v.file_path for v in record.versions] or [record.path]
    try:
        storage.remove(BUCKET, paths)
    except StorageError as e:
        raise UpstreamFailure('The file could not be deleted. Please try again.') from e
    db.session.delete(record)
    db.session.commit()
