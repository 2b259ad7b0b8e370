# freelancedesk/storage.py

"""
Object storage for project files and avatars.

Blobs are opaque and keyed by ``bucket`` + ``path``. Two backends share the
same surface: a local directory tree (signed URLs are itsdangerous tokens
served by the files blueprint) and S3 through boto3 presigned URLs.
"""

import logging
import os
from pathlib import Path

import boto3
from botocore.exceptions import ClientError
from flask import url_for
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

logger = logging.getLogger(__name__)


class StorageError(Exception):
    pass


class LocalStorage:
    def __init__(self, root, secret_key):
        self.root = Path(root)
        self.serializer = URLSafeTimedSerializer(secret_key, salt='freelancedesk-storage')

    def _full_path(self, bucket, path):
        full = (self.root / bucket / path).resolve()
        if not str(full).startswith(str((self.root / bucket).resolve())):
            raise StorageError(f'Invalid storage path: {path}')
        return full

    def upload(self, bucket, path, blob, content_type=None):
        full = self._full_path(bucket, path)
        try:
            full.parent.mkdir(parents=True, exist_ok=True)
            full.write_bytes(blob)
        except OSError as e:
            raise StorageError(str(e)) from e
        return path

    def list(self, bucket, prefix=''):
        base = self._full_path(bucket, prefix) if prefix else (self.root / bucket)
        if not base.exists():
            return []
        bucket_root = (self.root / bucket).resolve()
        return sorted(
            str(p.resolve().relative_to(bucket_root)).replace(os.sep, '/')
            for p in base.rglob('*') if p.is_file()
        )

    def open(self, bucket, path):
        full = self._full_path(bucket, path)
        if not full.is_file():
            raise StorageError(f'Object not found: {bucket}/{path}')
        return full.read_bytes()

    def remove(self, bucket, paths):
        for path in paths:
            full = self._full_path(bucket, path)
            if full.is_file():
                full.unlink()

    def create_signed_url(self, bucket, path, ttl_seconds):
        if not self._full_path(bucket, path).is_file():
            raise StorageError(f'Object not found: {bucket}/{path}')
        token = self.serializer.dumps({'bucket': bucket, 'path': path, 'ttl': ttl_seconds})
        return url_for('files.serve_signed', token=token)

    def resolve_signed(self, token):
        """Return ``(bucket, path)`` for a token still within the TTL it was signed with."""
        valid, data = self.serializer.loads_unsafe(token)
        if not valid or not isinstance(data, dict) or not isinstance(data.get('ttl'), int):
            raise StorageError('Invalid signed URL')
        try:
            data = self.serializer.loads(token, max_age=data['ttl'])
        except SignatureExpired:
            raise StorageError('Signed URL expired')
        except BadSignature:
            raise StorageError('Invalid signed URL')
        return data['bucket'], data['path']


class S3Storage:
    def __init__(self, endpoint_url=None, region=None):
        self.client = boto3.client('s3', endpoint_url=endpoint_url or None, region_name=region or None)

    def upload(self, bucket, path, blob, content_type=None):
        extra = {'ContentType': content_type} if content_type else {}
        try:
            self.client.put_object(Bucket=bucket, Key=path, Body=blob, **extra)
        except ClientError as e:
            raise StorageError(str(e)) from e
        return path

    def list(self, bucket, prefix=''):
        keys = []
        try:
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(obj['Key'] for obj in page.get('Contents', []))
        except ClientError as e:
            raise StorageError(str(e)) from e
        return sorted(keys)

    def open(self, bucket, path):
        try:
            return self.client.get_object(Bucket=bucket, Key=path)['Body'].read()
        except ClientError as e:
            raise StorageError(str(e)) from e

    def remove(self, bucket, paths):
        if not paths:
            return
        try:
            self.client.delete_objects(Bucket=bucket, Delete={'Objects': [{'Key': p} for p in paths]})
        except ClientError as e:
            raise StorageError(str(e)) from e

    def create_signed_url(self, bucket, path, ttl_seconds):
        try:
            return self.client.generate_presigned_url(
                'get_object', Params={'Bucket': bucket, 'Key': path}, ExpiresIn=ttl_seconds
            )
        except ClientError as e:
            raise StorageError(str(e)) from e


class Storage:
    """Flask extension picking the backend from STORAGE_BACKEND."""

    def __init__(self, app=None):
        self.backend = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        kind = app.config.get('STORAGE_BACKEND', 'local')
        if kind == 's3':
            self.backend = S3Storage(app.config.get('S3_ENDPOINT_URL'), app.config.get('AWS_REGION'))
        else:
            root = app.config.get('STORAGE_ROOT') or os.path.join(app.instance_path, 'storage')
            self.backend = LocalStorage(root, app.config['SECRET_KEY'])
        logger.info('Object storage backend: %s', kind)
        app.extensions['storage'] = self

    def __getattr__(self, name):
        backend = self.__dict__.get('backend')
        if backend is None:
            raise RuntimeError('Storage is not initialised; call init_app first')
        return getattr(backend, name)
