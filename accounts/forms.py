from django import forms


class ProfileUpdateForm(forms.Form):
    first_name = forms.CharField(max_length=150, required=False)
    last_name = forms.CharField(max_length=150, required=False)
    bio = forms.CharField(required=False)
    profile_image_url = forms.URLField(max_length=500, required=False)
    is_creator = forms.BooleanField(required=False)
