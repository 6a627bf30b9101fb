"""Instruction templates for the clinical analysis use cases."""

PRESCRIPTION_SCHEMA = {
    "patientInfo": {"name": None, "age": None, "id": None},
    "doctorInfo": {"name": None, "credentials": None, "clinic": None, "contact": None},
    "diagnosis": None,
    "medications": [
        {
            "name": "string",
            "dosage": None,
            "route": None,
            "frequency": None,
            "duration": None,
        }
    ],
    "specialInstructions": None,
    "prescriptionDate": None,
    "confidence": "high|medium|low",
}

DIAGNOSIS_SCHEMA = {
    "possibleDiagnoses": [
        {
            "condition": "string",
            "confidence": "high|medium|low",
            "description": "string",
            "matchingSymptoms": ["string"],
            "testingRecommendations": ["string"],
        }
    ],
    "followUpQuestions": ["string"],
    "immediateAttention": False,
    "disclaimer": "string",
}

VITALS_SCHEMA = {
    "trends": {"<metric>": "improving|worsening|stable|fluctuating, with a short explanation"},
    "concerns": ["string"],
    "recommendations": ["string"],
    "abnormalReadings": [
        {
            "metric": "string",
            "value": "string",
            "normalRange": "string",
            "severity": "high|medium|low",
        }
    ],
    "followUpRecommendations": ["string"],
    "summary": "string",
}

PRESCRIPTION_PROMPT = """You are a medical prescription analyzer.
Analyze the attached prescription image thoroughly and extract all relevant medical information.

Specifically identify and extract:
1. Patient information (name, age, ID if visible)
2. Doctor information (name, credentials, clinic, contact if visible)
3. Diagnosis or condition(s)
4. All prescribed medications, each with:
   - name (generic and brand if available)
   - dosage (strength and form)
   - route of administration
   - frequency / timing of doses
   - duration of treatment
5. Special instructions or warnings
6. Date of prescription

Also report your overall confidence in the extraction as "high", "medium" or "low".

Respond with a JSON object in exactly this shape:
{schema}

Use an explicit null for any field that is not visible or unclear. Never guess a value.
Return ONLY valid JSON with no additional text, explanation, or markdown."""

SYMPTOMS_PROMPT = """You are a medical diagnosis assistant supporting a clinician.
Based on the following reported symptoms:
{symptoms}

Respond with a JSON object in exactly this shape:
{schema}

Follow these rules:
1. Provide 3-5 possible diagnoses ranked from most to least likely
2. For each diagnosis, set confidence to exactly one of "high", "medium" or "low"
3. matchingSymptoms must only contain symptoms copied verbatim from the list above
4. List the tests that would help confirm or rule out each diagnosis in testingRecommendations
5. Include 3-5 follow-up questions that would help clarify the diagnosis
6. Set immediateAttention to true only if the symptoms suggest the patient should seek immediate care
7. Include a clear medical disclaimer

Return ONLY valid JSON with no additional text, explanation, or markdown."""

VITALS_PROMPT = """You are a medical vitals analyst. Based on the following patient vitals readings
({count} readings, most recent first, period: {period}):
{readings}

Respond with a JSON object in exactly this shape:
{schema}

Follow these rules:
1. For trends, use one key per metric type present in the readings and describe whether it is improving, worsening, stable, or fluctuating
2. For abnormalReadings, identify values outside clinical normal ranges and rate severity as "high", "medium" or "low"
3. For concerns, note potential health issues indicated by the data as short sentences
4. Include specific lifestyle recommendations to improve readings
5. Include recommendations for medical follow-up if necessary
6. Provide a concise summary of the most important findings

Return ONLY valid JSON with no additional text, explanation, or markdown."""
