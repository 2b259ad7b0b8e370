import io

from flask import Blueprint, request, redirect, url_for, flash, jsonify, send_file, current_app, abort
from flask_login import login_required, current_user
from .. import files as project_files
from ..access import Role, require_manage, require_read
from ..extensions import storage
from ..storage import LocalStorage, StorageError
from .helpers import form_action

file_bp = Blueprint('files', __name__)


def _signed(path):
    return project_files.signed_url(path, current_app.config['SIGNED_URL_TTL'])


@file_bp.route('/projects/<int:project_id>/files', methods=['POST'])
@login_required
@form_action
def upload(project_id):
    project, _ = require_manage(current_user, project_id)
    uploaded = request.files.get('file')
    if uploaded is None or not uploaded.filename:
        flash('Please choose a file to upload.', 'danger')
        return redirect(url_for('projects.project_detail', project_id=project.id) + '#files')

    record = project_files.upload_file(project.id, uploaded.filename, uploaded.read(), uploaded.mimetype, current_user.id)
    flash(f'Uploaded "{record.name}" (version {record.version}).', 'success')
    return redirect(url_for('projects.project_detail', project_id=project.id) + '#files')


@file_bp.route('/projects/<int:project_id>/files/<name>/delete', methods=['POST'])
@login_required
@form_action
def delete(project_id, name):
    require_manage(current_user, project_id)
    record = project_files.get_file(project_id, name)
    project_files.delete_file(record)
    flash(f'File "{name}" deleted.', 'success')
    return redirect(url_for('projects.project_detail', project_id=project_id) + '#files')


@file_bp.route('/api/files/<int:project_id>')
@login_required
def list_files(project_id):
    require_read(current_user, project_id)
    return jsonify({'files': [f.to_dict() for f in project_files.list_files(project_id)]})


@file_bp.route('/api/files/<int:project_id>/<name>')
@login_required
def download(project_id, name):
    require_read(current_user, project_id)
    record = project_files.get_file(project_id, name)
    url = _signed(project_files.current_storage_path(record))
    project_files.record_download(project_id, record.name, current_user.id)
    return redirect(url)


@file_bp.route('/api/files/<int:project_id>/<name>/versions')
@login_required
def versions(project_id, name):
    require_read(current_user, project_id)
    record = project_files.get_file(project_id, name)
    return jsonify({
        'versions': project_files.versions_with_creators(record),
        'currentVersion': record.current_version_id,
    })


@file_bp.route('/api/files/<int:project_id>/<name>/versions/<int:version_id>')
@login_required
def download_version(project_id, name, version_id):
    require_read(current_user, project_id)
    record = project_files.get_file(project_id, name)
    version = project_files.get_version(record, version_id)
    url = _signed(version.file_path)
    project_files.record_download(project_id, f'{record.name}_v{version.version_number}', current_user.id)
    return redirect(url)


@file_bp.route('/api/files/<int:project_id>/<name>/downloads')
@login_required
def downloads(project_id, name):
    _, role = require_read(current_user, project_id)
    # Clients only see their own download history
    only_user_id = current_user.id if role is Role.CLIENT else None
    rows = project_files.list_downloads(project_id, name, only_user_id=only_user_id)
    return jsonify({'downloads': [{
        'id': d.id,
        'file_name': d.file_name,
        'user_id': d.user_id,
        'downloaded_at': d.downloaded_at.isoformat(),
    } for d in rows]})


@file_bp.route('/storage/<token>')
def serve_signed(token):
    backend = storage.backend
    if not isinstance(backend, LocalStorage):
        abort(404)
    try:
        bucket, path = backend.resolve_signed(token)
        blob = backend.open(bucket, path)
    except StorageError as e:
        current_app.logger.warning(f"Signed download refused: {e}")
        abort(404)
    return send_file(io.BytesIO(blob), as_attachment=True, download_name=path.split('/')[-2])
