from decimal import Decimal

from django import forms
from django.core.validators import RegexValidator

from .models import Book, Chapter, Comment, Media

price_validator = RegexValidator(r'^\d+(\.\d{1,2})?$', 'Price must be a decimal with up to 2 places.')


def form_errors(form):
    """Flatten form errors to ``{field: [message, ...]}``."""
    return {field: [err['message'] for err in errs] for field, errs in form.errors.get_json_data().items()}


def merge_partial(instance, data, fields):
    """Existing field values overlaid with the keys present in ``data``."""
    merged = {}
    for field in fields:
        if field in data:
            merged[field] = data[field]
        else:
            value = getattr(instance, field)
            merged[field] = str(value) if isinstance(value, Decimal) else value
    return merged


class BookForm(forms.ModelForm):
    price = forms.CharField(required=False, validators=[price_validator])

    class Meta:
        model = Book
        fields = [
            'title',
            'description',
            'genre',
            'cover_image_url',
            'price',
            'is_mature',
            'is_published',
            'has_video',
            'has_audio',
            'has_images',
            'read_time',
        ]

    def clean_price(self):
        value = (self.cleaned_data.get('price') or '').strip()
        return Decimal(value or '0.00')


class ChapterForm(forms.ModelForm):
    class Meta:
        model = Chapter
        fields = ['title', 'content', 'order_index']


class MediaForm(forms.ModelForm):
    book_id = forms.IntegerField(required=False)
    chapter_id = forms.IntegerField(required=False)

    class Meta:
        model = Media
        fields = ['url', 'media_type', 'file_name', 'file_size', 'mime_type', 'alt_text']

    def clean(self):
        cleaned = super().clean()
        if not cleaned.get('book_id') and not cleaned.get('chapter_id'):
            raise forms.ValidationError('Media must be linked to a book or a chapter.')
        return cleaned


class CommentForm(forms.ModelForm):
    class Meta:
        model = Comment
        fields = ['content']

    def clean_content(self):
        content = self.cleaned_data['content'].strip()
        if not content:
            raise forms.ValidationError('Comment cannot be empty.')
        return content


class RatingForm(forms.Form):
    score = forms.IntegerField(min_value=1, max_value=5)


class PurchaseForm(forms.Form):
    book_id = forms.IntegerField()
    payment_intent_id = forms.CharField(max_length=255)


class PaymentIntentForm(forms.Form):
    book_id = forms.IntegerField()
