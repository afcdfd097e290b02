"""Built-in shape templates, seeded into the shape registry at start-up."""

from importlib import resources

TEMPLATES = [
    {
        "file": "labelled_resource.ttl",
        "uri": "https://rdf-forge.dev/shapes/LabelledResourceShape",
        "name": "Labelled resource",
        "description": "Every rdfs:Resource carries exactly one rdfs:label per language.",
        "category": "general",
        "target_class": None,
    },
    {
        "file": "person.ttl",
        "uri": "https://rdf-forge.dev/shapes/PersonShape",
        "name": "Person (schema.org)",
        "description": "schema:Person with a required name and an optional e-mail address.",
        "category": "schema.org",
        "target_class": "http://schema.org/Person",
    },
    {
        "file": "cube_observation.ttl",
        "uri": "https://rdf-forge.dev/shapes/ObservationShape",
        "name": "Cube observation",
        "description": "cube:Observation linked to its observation set and cube.",
        "category": "cube",
        "target_class": "https://cube.link/Observation",
    },
]


def read_template(filename: str) -> str:
    return resources.files(__name__).joinpath(filename).read_text(encoding="utf-8")
