from django import forms


class UploadOptionsForm(forms.Form):
    # 1-100, higher = better quality / larger file
    quality = forms.IntegerField(min_value=1, max_value=100, required=False)

    def clean_quality(self):
        q = self.cleaned_data.get("quality")
        return 75 if q is None else q


class HistoryQueryForm(forms.Form):
    page = forms.IntegerField(min_value=1, required=False)
    pageSize = forms.IntegerField(min_value=1, required=False)

    def clean_page(self):
        return self.cleaned_data.get("page") or 1

    def clean_pageSize(self):
        return self.cleaned_data.get("pageSize") or 20


def first_error(errors) -> str:
    """Flatten a form's error dict to one readable message."""
    for field, messages in errors.get_json_data().items():
        if messages:
            return f"{field}: {messages[0]['message']}"
    return "Validation error"
