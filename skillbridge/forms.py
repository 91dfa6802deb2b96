from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import BooleanField, FloatField, IntegerField, SelectMultipleField, StringField, TextAreaField
from wtforms.validators import (
    URL, DataRequired, Email, InputRequired, Length, NumberRange, Optional, Regexp, ValidationError,
)

from skillbridge import errors
from skillbridge.firestore_models import (
    FEEDBACK_COMMENT_MAX, RATING_MAX, RATING_MIN, TOPIC_REQUEST_DESCRIPTION_MAX, TOPIC_REQUEST_TOPIC_MAX,
)


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class ApiForm(FlaskForm):
    """JSON request body form. CSRF is checked app-wide for cookie sessions."""

    class Meta:
        csrf = False


class SessionProposalForm(ApiForm):
    title = StringField('Title', filters=[_strip], validators=[DataRequired(message='Title is required.'), Length(max=200)])
    description = TextAreaField('Description', filters=[_strip], validators=[Optional(), Length(max=5000)])
    date = StringField('Date', filters=[_strip], validators=[Optional()])
    max_attendees = IntegerField('Maximum attendees', validators=[Optional(), NumberRange(min=1, message='Must be at least 1.')])
    price = FloatField('Price', validators=[Optional(), NumberRange(min=0, message='Price cannot be negative.')])
    tags = SelectMultipleField('Tags', choices=[], validate_choice=False)


class RejectionForm(ApiForm):
    # stored verbatim, so no strip filter
    reason = TextAreaField('Reason', validators=[DataRequired(message='Please provide a reason for rejection.')])


class BulkDecisionForm(ApiForm):
    ids = SelectMultipleField('Sessions', choices=[], validate_choice=False,
                              validators=[DataRequired(message='Select at least one session.')])
    reason = TextAreaField('Reason', validators=[Optional()])


class RegisterForm(ApiForm):
    confirm_payment = BooleanField('Confirm payment')


class FeedbackForm(ApiForm):
    rating = IntegerField('Rating', validators=[
        InputRequired(message='Please select a rating.'),
        NumberRange(min=RATING_MIN, max=RATING_MAX, message='Rating must be from 1 to 5.'),
    ])
    comment = TextAreaField('Comment', filters=[_strip], validators=[
        Optional(), Length(max=FEEDBACK_COMMENT_MAX, message='Comment must be at most 150 characters.'),
    ])

    def validate_rating(self, field):
        raw = field.raw_data[0] if field.raw_data else None
        if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
            raise ValidationError('Rating must be a whole number.')


class SpeakerProposalForm(ApiForm):
    year = StringField('Year', filters=[_strip], validators=[DataRequired(message='Please select your year.')])
    resume = StringField('Resume link', filters=[_strip], validators=[
        DataRequired(message='Please provide a link to your resume.'), URL(message='Resume must be a URL.'),
    ])
    name = StringField('Name', filters=[_strip], validators=[Optional(), Length(max=120)])
    email = StringField('Email', filters=[_strip], validators=[Optional(), Email(message='Enter a valid email address.')])
    linkedin = StringField('LinkedIn', filters=[_strip], validators=[Optional(), URL(message='LinkedIn must be a URL.')])
    phone = StringField('Phone', filters=[_strip], validators=[Optional(), Length(min=10, max=20)])


class ProposalMessageForm(ApiForm):
    message = TextAreaField('Message', validators=[DataRequired(message='Please enter a message.')])


class InterviewForm(ApiForm):
    interview_date = StringField('Interview date', filters=[_strip], validators=[
        DataRequired(message='Please fill in all interview details (date, time, venue).'),
        Regexp(r'^\d{4}-\d{2}-\d{2}$', message='Use YYYY-MM-DD.'),
    ])
    interview_time = StringField('Interview time', filters=[_strip], validators=[
        DataRequired(message='Please fill in all interview details (date, time, venue).'),
        Regexp(r'^\d{2}:\d{2}$', message='Use HH:MM.'),
    ])
    interview_venue = StringField('Venue', filters=[_strip], validators=[
        DataRequired(message='Please fill in all interview details (date, time, venue).'), Length(max=200),
    ])


class TopicRequestForm(ApiForm):
    topic = StringField('Topic', filters=[_strip], validators=[
        DataRequired(message='Please provide a topic.'), Length(max=TOPIC_REQUEST_TOPIC_MAX),
    ])
    description = TextAreaField('Description', filters=[_strip], validators=[
        Optional(), Length(max=TOPIC_REQUEST_DESCRIPTION_MAX),
    ])
    preferred_date = StringField('Preferred date', filters=[_strip], validators=[Optional(), Length(max=50)])


def bind_json(form_class):
    """Build ``form_class`` from the request's JSON body.

    ``None`` values count as absent and lists become repeated values, which is
    how WTForms reads multi-valued form fields.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return form_class()
    data = MultiDict()
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            for item in value:
                data.add(key, item)
        else:
            data.add(key, value)
    return form_class(formdata=data)


def validated(form_class):
    form = bind_json(form_class)
    if not form.validate():
        raise errors.ValidationError(errors=form.errors)
    return form
