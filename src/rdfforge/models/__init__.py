from rdfforge.models.data_source import DataSource
from rdfforge.models.dimension import Dimension, DimensionValue
from rdfforge.models.job import Job, JobLog, JobStep
from rdfforge.models.pipeline import Pipeline, PipelineVersion
from rdfforge.models.schedule import JobSchedule
from rdfforge.models.shape import Shape, ShapeVersion
from rdfforge.models.triplestore import TriplestoreConnection

__all__ = [
    "DataSource",
    "Dimension",
    "DimensionValue",
    "Job",
    "JobLog",
    "JobSchedule",
    "JobStep",
    "Pipeline",
    "PipelineVersion",
    "Shape",
    "ShapeVersion",
    "TriplestoreConnection",
]
