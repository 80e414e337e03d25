from .loaders import load_covariate_file, load_genotype_file, load_phenotype_file

__all__ = ['load_genotype_file', 'load_phenotype_file', 'load_covariate_file']
