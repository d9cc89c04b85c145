from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Avg, Count


class Genre(models.TextChoices):
    FANTASY = 'fantasy', 'Fantasy'
    SCI_FI = 'sci-fi', 'Sci-Fi'
    ROMANCE = 'romance', 'Romance'
    HORROR = 'horror', 'Horror'
    THRILLER = 'thriller', 'Thriller'
    MYSTERY = 'mystery', 'Mystery'
    ADVENTURE = 'adventure', 'Adventure'
    DRAMA = 'drama', 'Drama'
    COMEDY = 'comedy', 'Comedy'
    NON_FICTION = 'non-fiction', 'Non-Fiction'
    BIOGRAPHY = 'biography', 'Biography'
    SELF_HELP = 'self-help', 'Self-Help'
    BUSINESS = 'business', 'Business'
    HISTORY = 'history', 'History'
    SCIENCE = 'science', 'Science'
    OTHER = 'other', 'Other'


class Book(models.Model):
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    author = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='books')
    genre = models.CharField(max_length=20, choices=Genre.choices)
    cover_image_url = models.URLField(max_length=500, blank=True)
    price = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(0)])
    is_mature = models.BooleanField(default=False)
    is_published = models.BooleanField(default=False)
    has_video = models.BooleanField(default=False)
    has_audio = models.BooleanField(default=False)
    has_images = models.BooleanField(default=False)
    read_time = models.PositiveIntegerField(null=True, blank=True)
    view_count = models.PositiveIntegerField(default=0)
    like_count = models.PositiveIntegerField(default=0)
    comment_count = models.PositiveIntegerField(default=0)
    rating = models.DecimalField(max_digits=3, decimal_places=2, default=Decimal('0.00'))
    rating_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['is_published', '-created_at'], name='book_published_recent_idx'),
            models.Index(fields=['is_published', '-view_count'], name='book_published_views_idx'),
        ]

    def __str__(self):
        return self.title

    @property
    def is_free(self):
        return self.price <= 0


class Chapter(models.Model):
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name='chapters')
    title = models.CharField(max_length=255)
    content = models.TextField()
    order_index = models.PositiveIntegerField()
    word_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['order_index']
        unique_together = ('book', 'order_index')

    def __str__(self):
        return f'{self.book_id}:{self.order_index}:{self.title}'

    @staticmethod
    def count_words(content):
        return len((content or '').split())

    def save(self, *args, **kwargs):
        self.word_count = self.count_words(self.content)
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'content' in update_fields and 'word_count' not in update_fields:
            kwargs['update_fields'] = list(update_fields) + ['word_count']
        super().save(*args, **kwargs)


class Media(models.Model):
    class Type(models.TextChoices):
        IMAGE = 'image', 'Image'
        VIDEO = 'video', 'Video'
        AUDIO = 'audio', 'Audio'

    chapter = models.ForeignKey(Chapter, on_delete=models.CASCADE, null=True, blank=True, related_name='media')
    book = models.ForeignKey(Book, on_delete=models.CASCADE, null=True, blank=True, related_name='media')
    url = models.URLField(max_length=500)
    media_type = models.CharField(max_length=10, choices=Type.choices)
    file_name = models.CharField(max_length=255, blank=True)
    file_size = models.PositiveBigIntegerField(null=True, blank=True)
    mime_type = models.CharField(max_length=100, blank=True)
    alt_text = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(chapter__isnull=False) | models.Q(book__isnull=False),
                name='media_has_owner',
            ),
        ]

    def __str__(self):
        return f'{self.media_type}:{self.url}'


class Like(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='likes')
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name='likes')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('user', 'book')


class Bookmark(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='bookmarks')
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name='bookmarked_by')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('user', 'book')


class Comment(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='comments')
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name='comments')
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f'{self.book_id}:{self.user_id}'


class Rating(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='ratings')
    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name='ratings')
    score = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('user', 'book')

    @staticmethod
    def aggregate_for(book_id):
        agg = Rating.objects.filter(book_id=book_id).aggregate(avg=Avg('score'), count=Count('id'))
        average = Decimal(str(agg['avg'] or 0)).quantize(Decimal('0.01'))
        return average, agg['count'] or 0


class Purchase(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='purchases')
    # Purchases keep a book from being hard-deleted.
    book = models.ForeignKey(Book, on_delete=models.PROTECT, related_name='purchases')
    amount = models.DecimalField(max_digits=8, decimal_places=2)
    payment_intent_id = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('user', 'book')

    def __str__(self):
        return f'{self.user_id}:{self.book_id}:{self.amount}'


class SystemErrorLog(models.Model):
    source = models.CharField(max_length=80)
    message = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
