def _iso(value):
    return value.isoformat() if value else None


def user_summary(user):
    return {
        'id': user.id,
        'first_name': user.first_name,
        'last_name': user.last_name,
        'display_name': user.display_name,
        'profile_image_url': user.profile_image_url,
        'is_creator': user.is_creator,
    }


def user_profile(user):
    return {
        **user_summary(user),
        'external_id': user.external_id,
        'email': user.email,
        'bio': user.bio,
        'total_earnings': str(user.total_earnings),
        'created_at': _iso(user.created_at),
    }


def book_summary(book):
    return {
        'id': book.id,
        'title': book.title,
        'description': book.description,
        'genre': book.genre,
        'cover_image_url': book.cover_image_url,
        'price': str(book.price),
        'is_mature': book.is_mature,
        'is_published': book.is_published,
        'has_video': book.has_video,
        'has_audio': book.has_audio,
        'has_images': book.has_images,
        'read_time': book.read_time,
        'view_count': book.view_count,
        'like_count': book.like_count,
        'comment_count': book.comment_count,
        'rating': str(book.rating),
        'rating_count': book.rating_count,
        'author': user_summary(book.author),
        'created_at': _iso(book.created_at),
        'updated_at': _iso(book.updated_at),
    }


def chapter(row, include_content=True):
    return {
        'id': row.id,
        'book_id': row.book_id,
        'title': row.title,
        'order_index': row.order_index,
        'word_count': row.word_count,
        'content': row.content if include_content else None,
        'created_at': _iso(row.created_at),
        'updated_at': _iso(row.updated_at),
    }


def media(row):
    return {
        'id': row.id,
        'book_id': row.book_id,
        'chapter_id': row.chapter_id,
        'url': row.url,
        'type': row.media_type,
        'file_name': row.file_name,
        'file_size': row.file_size,
        'mime_type': row.mime_type,
        'alt_text': row.alt_text,
        'created_at': _iso(row.created_at),
    }


def comment(row):
    return {
        'id': row.id,
        'book_id': row.book_id,
        'content': row.content,
        'user': user_summary(row.user),
        'created_at': _iso(row.created_at),
    }


def purchase(row):
    return {
        'id': row.id,
        'book_id': row.book_id,
        'user_id': row.user_id,
        'amount': str(row.amount),
        'payment_intent_id': row.payment_intent_id,
        'created_at': _iso(row.created_at),
    }


def book_detail(book, *, has_access, is_liked=False, is_bookmarked=False, is_purchased=False):
    """Full book graph; chapter text is withheld unless ``has_access``."""
    return {
        **book_summary(book),
        'has_access': has_access,
        'is_liked': is_liked,
        'is_bookmarked': is_bookmarked,
        'is_purchased': is_purchased,
        'chapters': [chapter(c, include_content=has_access) for c in book.chapters.all()],
        'media': [media(m) for m in book.media.all()],
        'comments': [comment(c) for c in book.comments.all()],
    }
