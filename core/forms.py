from django import forms

from core.clinic_range import ClinicRangeError, PRESET_CHOICES, PRESET_TODAY
from core.utils import get_default_engine


INPUT_CLASSES = 'mt-1 block w-full rounded-md border-gray-300 shadow-sm focus:border-primary-500 focus:ring-primary-500'

LEGACY_FIELDS = ('today', 'date', 'startDate', 'endDate')


class ClinicRangeForm(forms.Form):
    """
    Date range filter shared by every list page and JSON endpoint.

    Field names follow the query string (preset, from, to) so the form can be
    bound straight to request.GET. After is_valid(), cleaned_data['range']
    holds the ResolvedRange, or None for 'all'.
    """

    # Free text rather than a ChoiceField so aliases and the unknown-preset
    # message come from the engine
    preset = forms.CharField(
        required=False,
        widget=forms.Select(choices=PRESET_CHOICES, attrs={'class': INPUT_CLASSES}),
        help_text='Clinic days are counted in the clinic timezone'
    )

    def __init__(self, *args, engine=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.engine = engine or get_default_engine()
        self.fields['preset'].initial = PRESET_TODAY

        # 'from' is a keyword, so the bounds are added here instead of as attributes
        self.fields['from'] = forms.CharField(
            required=False,
            widget=forms.DateInput(attrs={'type': 'date', 'class': INPUT_CLASSES}),
            help_text='First clinic day (YYYY-MM-DD)'
        )
        self.fields['to'] = forms.CharField(
            required=False,
            widget=forms.DateInput(attrs={'type': 'date', 'class': INPUT_CLASSES}),
            help_text='Last clinic day, included (YYYY-MM-DD)'
        )
        for name in LEGACY_FIELDS:
            self.fields[name] = forms.CharField(required=False, widget=forms.HiddenInput())

        self.deprecation_warnings = []

    def clean(self):
        cleaned_data = super().clean()
        self.deprecation_warnings = []
        try:
            cleaned_data['range'] = self.engine.parse_range_params(
                cleaned_data,
                warn=self.deprecation_warnings.append
            )
        except ClinicRangeError as e:
            raise forms.ValidationError(str(e), code=type(e).__name__)
        return cleaned_data

    def query_params(self):
        """Serialized parameters for API calls (requires a valid form)"""
        return self.engine.serialize_range_params(self.cleaned_data['range'])

    def cache_key(self):
        return self.engine.build_query_string(self.cleaned_data['range'])
