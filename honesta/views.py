import logging

from flask import Blueprint, current_app, g, jsonify, request

from .auth import login_required
from .claims import AttemptTracker
from .errors import error_response
from .image_hosting import check_size, read_upload
from .imaging import compress_original_image, convert_to_black_and_white, decode_data_url
from .models import (ItemStatus, attempt_key, is_verified_claimant, item_view, new_found_item,
                     new_message, same_user)

logger = logging.getLogger(__name__)

views = Blueprint('views', __name__)


def get_payload():
    return request.get_json(silent=True) or request.form


def get_list(data, name):
    if hasattr(data, 'getlist'):
        return data.getlist(name)
    value = data.get(name) or []
    return value if isinstance(value, list) else [value]


def attempt_tracker():
    return AttemptTracker(
        current_app.store.attempt_logs(),
        max_attempts=current_app.config['CLAIM_MAX_ATTEMPTS'],
        lockout_seconds=current_app.config['CLAIM_LOCKOUT_SECONDS'],
    )


def is_verified(item):
    return is_verified_claimant(item, g.user['id'])


def mark_verified(item):
    def add_claimant(it):
        claimants = it.setdefault('verifiedClaimants', [])
        if not any(same_user(c, g.user['id']) for c in claimants):
            claimants.append(g.user['id'])

    return current_app.store.modify_item(item['id'], add_claimant) or item


def view_for_current_user(item):
    view = item_view(item, g.user['id'], verified=is_verified(item))
    image_host = current_app.image_host
    for field in ('imageUrl', 'originalImageUrl'):
        if view.get(field):
            view[field] = image_host.resolve(view[field])
    return view


def load_item_or_404(item_id):
    item = current_app.store.get_item(item_id)
    if not item:
        return None, error_response('Item not found', 404)
    return item, None


def read_image():
    """Raw bytes of the photo, from a file upload or a camera data URL"""
    file = request.files.get('imageUpload')
    if file and file.filename:
        return read_upload(file)

    data_url = get_payload().get('image')
    if not data_url:
        raise ValueError("Please attach a photo of the item")
    return check_size(decode_data_url(data_url))


def manual_challenge(data):
    questions = get_list(data, 'questions')
    answers = get_list(data, 'answers')
    pairs = []
    for idx, question in enumerate(questions):
        question = (question or '').strip()
        if not question:
            continue
        answer = answers[idx] if idx < len(answers) else ''
        pairs.append((question, (answer or '').strip()))

    if not pairs:
        raise ValueError("Add at least one verification question")
    if any(not answer for _, answer in pairs):
        raise ValueError("Every verification question needs a reference answer")
    return [q for q, _ in pairs], [a for _, a in pairs]


def ai_challenge(original_image):
    """Generated challenge; refused when it carries an answer nobody could match"""
    assistant = current_app.assistant
    if not assistant.ai_enabled:
        raise ValueError("AI analysis is unavailable. Use manual questions.")

    challenge = assistant.generate_verification_questions(original_image)
    answers = challenge.get('answers') or []
    if not answers or any(not (answer or '').strip() for answer in answers):
        raise ValueError("AI analysis could not produce a challenge. Use manual questions.")
    return challenge


@views.route('/health')
def health():
    return jsonify({
        'status': 'ok',
        'store': current_app.store.mode,
        'ai': current_app.assistant.ai_enabled,
        'images': current_app.image_host.mode,
    })


# -------------------------
# FEED
# -------------------------
@views.route('/api/items')
@login_required
def list_items():
    """Shared feed, newest first, optionally filtered by title"""
    search = (request.args.get('q') or '').strip().lower()
    items = sorted(current_app.store.get_items(), key=lambda it: it.get('timestamp', 0), reverse=True)
    if search:
        items = [it for it in items if search in (it.get('title') or '').lower()]
    return jsonify({'count': len(items), 'items': [view_for_current_user(it) for it in items]})


@views.route('/api/items/<item_id>')
@login_required
def get_item(item_id):
    item, error = load_item_or_404(item_id)
    if error:
        return error
    return jsonify(view_for_current_user(item))


# -------------------------
# REPORT A FOUND ITEM
# -------------------------
@views.route('/api/items', methods=['POST'])
@login_required
def report_item():
    data = get_payload()
    mode = (data.get('mode') or 'ai').lower()
    if mode not in ('ai', 'manual'):
        return error_response("mode must be 'ai' or 'manual'", 400)

    try:
        raw = read_image()
        public_image = convert_to_black_and_white(raw)
        original_image = compress_original_image(raw)

        if mode == 'ai':
            challenge = ai_challenge(original_image)
            title = challenge['title'] or 'Found Item'
            questions, answers = challenge['questions'], challenge['answers']
        else:
            questions, answers = manual_challenge(data)
            title = (data.get('title') or '').strip() or 'Found Item'

        image_host = current_app.image_host
        public_url = image_host.publish(public_image, prefix='found-items/public')
        original_url = image_host.publish(original_image, prefix='found-items/original')
    except ValueError as ve:
        return error_response(str(ve), 400)

    item = new_found_item(title, public_url, original_url, g.user, questions, answers)
    current_app.store.save_item(item)
    logger.info("Found item %s reported by %s (%s, %d questions)",
                item['id'], g.user['id'], mode, len(questions))
    return jsonify(view_for_current_user(item)), 201


# -------------------------
# CLAIM
# -------------------------
@views.route('/api/items/<item_id>/claim', methods=['POST'])
@login_required
def claim_item(item_id):
    item, error = load_item_or_404(item_id)
    if error:
        return error

    if same_user(item.get('founderId'), g.user['id']):
        return error_response("You reported this item", 400)
    if item.get('status') == ItemStatus.HANDOVERED.value:
        return error_response("This item has already been returned", 409)

    if is_verified(item):
        return jsonify({'verified': True, 'item': view_for_current_user(item)})

    # Counted per account and item, never per session
    key = attempt_key(g.user['id'], item_id)
    tracker = attempt_tracker()
    status = tracker.status(key)
    if status.locked:
        response = jsonify({
            'error': "Too many failed attempts. Try again later.",
            'verified': False,
            'locked': True,
            'attemptsRemaining': 0,
            'retryAfter': status.retry_after,
        })
        response.headers['Retry-After'] = str(status.retry_after)
        return response, 429

    questions = item.get('verificationQuestions') or []
    answers = [str(a) for a in get_list(get_payload(), 'answers')]
    answers = (answers + [''] * len(questions))[:len(questions)]

    is_correct = current_app.assistant.verify_answers(
        questions, answers, item.get('verificationAnswers') or [])

    if is_correct:
        tracker.reset(key)
        item = mark_verified(item)
        logger.info("Ownership of %s verified for %s", item_id, g.user['id'])
        return jsonify({'verified': True, 'item': view_for_current_user(item)})

    status = tracker.record_failure(key)
    logger.info("Failed claim on %s by %s (%d attempts left)", item_id, g.user['id'], status.remaining)
    return jsonify({
        'verified': False,
        'message': "Integrity check failed. You do not seem to be the owner of this item.",
        'attemptsRemaining': status.remaining,
        'locked': status.locked,
        'retryAfter': status.retry_after,
    })


# -------------------------
# MESSAGES
# -------------------------
def can_chat(item):
    return same_user(item.get('founderId'), g.user['id']) or is_verified(item)


@views.route('/api/items/<item_id>/messages')
@login_required
def get_messages(item_id):
    item, error = load_item_or_404(item_id)
    if error:
        return error
    if not can_chat(item):
        return error_response("Prove ownership to unlock the chat", 403)
    return jsonify({'messages': item.get('messages') or [], 'status': item.get('status')})


@views.route('/api/items/<item_id>/messages', methods=['POST'])
@login_required
def send_message(item_id):
    item, error = load_item_or_404(item_id)
    if error:
        return error
    if not can_chat(item):
        return error_response("Prove ownership to unlock the chat", 403)
    if item.get('status') == ItemStatus.HANDOVERED.value:
        return error_response("This item has already been returned", 409)

    text = (get_payload().get('text') or '').strip()
    if not text:
        return error_response("Message cannot be empty", 400)

    message = new_message(g.user, text)
    updated = current_app.store.modify_item(
        item_id, lambda it: it.setdefault('messages', []).append(message))
    if not updated:
        return error_response('Item not found', 404)
    return jsonify({'message': message, 'messages': updated['messages']}), 201


# -------------------------
# FOUNDER ACTIONS
# -------------------------
def founder_only(item):
    if not same_user(item.get('founderId'), g.user['id']):
        return error_response("Only the founder can do this", 403)
    return None


@views.route('/api/items/<item_id>/handover', methods=['POST'])
@login_required
def mark_handovered(item_id):
    item, error = load_item_or_404(item_id)
    if error:
        return error
    error = founder_only(item)
    if error:
        return error

    def handover(it):
        it['status'] = ItemStatus.HANDOVERED.value

    updated = current_app.store.modify_item(item_id, handover)
    if not updated:
        return error_response('Item not found', 404)
    logger.info("Item %s marked as returned", item_id)
    return jsonify(view_for_current_user(updated))


@views.route('/api/items/<item_id>', methods=['DELETE'])
@login_required
def delete_item(item_id):
    item, error = load_item_or_404(item_id)
    if error:
        return error
    error = founder_only(item)
    if error:
        return error

    current_app.store.delete_item(item_id)
    logger.info("Item %s deleted by founder", item_id)
    return jsonify({'message': 'Report removed'})
