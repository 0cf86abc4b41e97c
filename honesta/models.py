"""Document shapes stored in the shared JSON blob and the views served over them."""
import random
import string
import time
from enum import Enum
from typing import Any, Dict, List, Optional

ITEM_ID_ALPHABET = string.digits + string.ascii_uppercase
ITEM_ID_LENGTH = 9

# Never leave the founder's view
PRIVATE_ITEM_FIELDS = ('verificationAnswers', 'verifiedClaimants', 'originalImageUrl', 'messages',
                       'founderPhone')
# Hidden even from claimants who proved ownership
SECRET_ITEM_FIELDS = ('verificationAnswers', 'verifiedClaimants')


class UserRole(str, Enum):
    STUDENT = 'STUDENT'
    FACULTY = 'FACULTY'


class ItemStatus(str, Enum):
    AVAILABLE = 'available'
    HANDOVERED = 'handovered'


def now_ms() -> int:
    return int(time.time() * 1000)


def new_item_id() -> str:
    return ''.join(random.choices(ITEM_ID_ALPHABET, k=ITEM_ID_LENGTH))


def user_id_from_email(email: str) -> str:
    return email.split('@')[0].upper()


def same_user(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.upper() == b.upper()


def attempt_key(user_id: str, item_id: str) -> str:
    return f"{user_id.upper()}:{item_id}"


def is_verified_claimant(item: Dict[str, Any], user_id: Optional[str]) -> bool:
    return any(same_user(claimant, user_id) for claimant in item.get('verifiedClaimants') or [])


def new_user(full_name, phone_number, email, password_hash, role: UserRole) -> Dict[str, Any]:
    email = email.lower()
    return {
        'id': user_id_from_email(email),
        'fullName': full_name,
        'phoneNumber': phone_number,
        'email': email,
        'password': password_hash,
        'role': role.value,
    }


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k != 'password'}


def new_found_item(title, image_url, original_image_url, founder: Dict[str, Any],
                   questions: List[str], answers: List[str]) -> Dict[str, Any]:
    return {
        'id': new_item_id(),
        'title': title,
        'imageUrl': image_url,
        'originalImageUrl': original_image_url,
        'founderId': founder['id'],
        'founderName': founder['fullName'],
        'founderPhone': founder['phoneNumber'],
        'timestamp': now_ms(),
        'status': ItemStatus.AVAILABLE.value,
        'verificationQuestions': questions,
        'verificationAnswers': answers,
        'messages': [],
        'verifiedClaimants': [],
    }


def new_message(sender: Dict[str, Any], text: str) -> Dict[str, Any]:
    return {
        'senderId': sender['id'],
        'senderName': sender['fullName'],
        'text': text,
        'timestamp': now_ms(),
    }


def item_view(item: Dict[str, Any], viewer_id: Optional[str], verified: bool = False) -> Dict[str, Any]:
    """
    Shape an item for a particular viewer.

    The founder gets the full document. A claimant who passed verification
    gets the contact details, the original photo and the chat, never the
    reference answers. Everyone else sees the darkened photo and the questions.
    """
    if same_user(item.get('founderId'), viewer_id):
        view = dict(item)
        view['isFounder'] = True
        view['unlocked'] = True
        return view

    hidden = SECRET_ITEM_FIELDS if verified else PRIVATE_ITEM_FIELDS
    view = {k: v for k, v in item.items() if k not in hidden}
    view['isFounder'] = False
    view['unlocked'] = verified
    return view
